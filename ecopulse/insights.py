"""Natural-language energy summaries and device identification via Gemini."""

import json
import logging

from google import genai
from google.genai import types

from ecopulse.config import DEFAULT_VOLTAGE_LIMIT, GEMINI_API_KEY, GEMINI_MODEL

_LOGGER = logging.getLogger(__name__)

INSIGHTS_EMPTY = "Unable to generate insights at this moment."
INSIGHTS_OFFLINE = "The energy analyst is currently offline."
IDENTIFY_NO_DATA = "Unknown (No Data)"
IDENTIFY_FAILED = "Identification failed."
IDENTIFY_UNAVAILABLE = "AI identification service unavailable."

# Samples fed to the identification prompt, and the minimum the UI waits for
IDENTIFY_SAMPLES = 10
IDENTIFY_MIN_HISTORY = 5


def build_insights_prompt(nodes, voltage_limit=DEFAULT_VOLTAGE_LIMIT):
    summary = [
        {
            "name": n.name,
            "status": "ON" if n.is_on else "OFF",
            "currentPower": f"{n.current_power:.2f}",
            "powerLoss": f"{n.current_power_loss:.2f}",
            "avgPower": n.base_power,
        }
        for n in nodes
    ]
    return (
        f"Analyze this smart home energy setup: {json.dumps(summary)}. \n"
        f"The system voltage limit is {voltage_limit:g}V. \n"
        "Please provide:\n"
        "1. A breakdown of the current energy load and cumulative power loss.\n"
        "2. Efficiency recommendations.\n"
        "3. Safety warnings.\n"
        "Keep it concise and professional."
    )


def build_identify_prompt(history):
    samples = ", ".join(f"{r.power:.2f}" for r in history[-IDENTIFY_SAMPLES:])
    return (
        f"Based on these consecutive power consumption readings (in Watts): [{samples}], \n"
        "predict what type of household appliance this is. \n"
        "Is it an LED bulb, an Incandescent bulb, a Fan, a Laptop, or something else? \n"
        "Give a short 1-sentence explanation of why based on the wattage. \n"
        'Format: "Prediction: [Type] - [Explanation]"'
    )


class InsightsClient:
    """
    Thin wrapper over the Gemini text API. Every failure is logged and turned
    into a fixed fallback string; nothing propagates to the dashboard.
    """

    def __init__(self, api_key=GEMINI_API_KEY, model=GEMINI_MODEL, client=None):
        self.model = model
        if client is not None:
            self._client = client
        elif api_key:
            self._client = genai.Client(api_key=api_key)
        else:
            _LOGGER.warning("No Gemini API key configured; AI features are offline")
            self._client = None

    @property
    def available(self):
        return self._client is not None

    def _generate(self, prompt, **config):
        response = self._client.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(**config),
        )
        return response.text

    def energy_insights(self, nodes, voltage_limit=DEFAULT_VOLTAGE_LIMIT):
        """Summarize the current load, losses and safety concerns."""
        if not self.available:
            return INSIGHTS_OFFLINE
        try:
            text = self._generate(build_insights_prompt(nodes, voltage_limit), temperature=0.7, top_p=0.8)
        except Exception:
            _LOGGER.exception("Gemini insights request failed")
            return INSIGHTS_OFFLINE
        return text or INSIGHTS_EMPTY

    def predict_device_type(self, history):
        """Guess the appliance type from its recent power samples."""
        if not history:
            return IDENTIFY_NO_DATA
        if not self.available:
            return IDENTIFY_UNAVAILABLE
        try:
            # Low temperature for a more factual answer
            text = self._generate(build_identify_prompt(history), temperature=0.2)
        except Exception:
            _LOGGER.exception("Gemini identification request failed")
            return IDENTIFY_UNAVAILABLE
        return (text or "").strip() or IDENTIFY_FAILED

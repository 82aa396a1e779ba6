import logging
import threading
from dataclasses import replace
from datetime import datetime

import numpy as np

from ecopulse.analytics import aggregate, project_billing
from ecopulse.config import (
    DEFAULT_VOLTAGE_LIMIT,
    HISTORY_WINDOW,
    JITTER_RANGE,
    LOSS_FRACTION_RANGE,
    RATE_PER_KWH,
    VOLTAGE_FLOOR,
    VOLTAGE_LIMIT_MAX,
    VOLTAGE_LIMIT_MIN,
    VOLTAGE_SPREAD,
)
from ecopulse.models.appliance import KINDS, ApplianceNode, EnergyReading, default_nodes

_LOGGER = logging.getLogger(__name__)

# --- SIMULATION ENGINE ---
# Pure transitions: each takes the current node tuple and returns a new one.


def clamp_voltage_limit(limit):
    """Keep a requested voltage ceiling inside the adjustable range."""
    return max(VOLTAGE_LIMIT_MIN, min(VOLTAGE_LIMIT_MAX, limit))


def sample_reading(node, voltage_limit, rng, timestamp):
    """
    Draw one reading for a node.
    Off nodes read all zeros. On nodes jitter around base_power by +/-5%,
    lose 3-6% of that in transmission, and sit at 215-225 V capped by voltage_limit.
    """
    if not node.is_on:
        return EnergyReading(timestamp=timestamp)
    jitter = rng.uniform(*JITTER_RANGE)
    power = node.base_power * jitter
    power_loss = power * rng.uniform(*LOSS_FRACTION_RANGE)
    voltage = min(VOLTAGE_FLOOR + rng.uniform(0, VOLTAGE_SPREAD), voltage_limit)
    return EnergyReading(
        timestamp=timestamp,
        power=float(power),
        voltage=float(voltage),
        power_loss=float(power_loss),
    )


def advance(nodes, voltage_limit=DEFAULT_VOLTAGE_LIMIT, rng=None, now=None):
    """
    Apply one simulation tick to every node.
    nodes: tuple of ApplianceNode
    voltage_limit: float, ceiling for simulated voltage
    rng: numpy Generator (or anything with uniform(low, high)), fresh one if None
    now: datetime of the tick, wall clock if None
    Returns a new tuple; each node gains one reading, history capped at HISTORY_WINDOW.
    """
    if rng is None:
        rng = np.random.default_rng()
    timestamp = (now or datetime.now()).strftime("%H:%M:%S")
    return tuple(
        node.with_reading(sample_reading(node, voltage_limit, rng, timestamp), HISTORY_WINDOW)
        for node in nodes
    )


def toggle(nodes, node_id):
    """Flip is_on for the node matching node_id; every other node is untouched."""
    return tuple(replace(n, is_on=not n.is_on) if n.id == node_id else n for n in nodes)


def needs_relay(node):
    """Lightbulb toggles are mirrored to the hardware relay."""
    return node.kind == "lightbulb"


def add(nodes, name, kind):
    """
    Append a new switched-off node.
    An empty or whitespace-only name, or an unknown kind, leaves nodes unchanged.
    """
    if not name or not name.strip() or kind not in KINDS:
        return nodes
    return nodes + (ApplianceNode.create(name, kind),)


def remove(nodes, node_id):
    return tuple(n for n in nodes if n.id != node_id)


def annotate(nodes, node_id, prediction):
    """Attach an identification result to a node."""
    return tuple(replace(n, ai_prediction=prediction) if n.id == node_id else n for n in nodes)


def find_node(nodes, node_id):
    for node in nodes:
        if node.id == node_id:
            return node
    return None


# --- STATEFUL OWNER ---

class TelemetryService:
    """
    Holds the single authoritative node tuple and voltage limit.
    Every operation swaps in a wholly new tuple, so snapshot() readers always
    see a complete state. An optional DeviceLink receives lightbulb toggles.
    """
    def __init__(self, nodes=None, voltage_limit=DEFAULT_VOLTAGE_LIMIT,
                 rate_per_kwh=RATE_PER_KWH, device_link=None, rng=None):
        self._nodes = tuple(default_nodes() if nodes is None else nodes)
        self._voltage_limit = clamp_voltage_limit(voltage_limit)
        self.rate_per_kwh = rate_per_kwh
        self.device_link = device_link
        # Generator shared across ticks so a seeded run is reproducible
        self._rng = rng if rng is not None else np.random.default_rng()
        self._lock = threading.Lock()
        self.tick_count = 0

    @property
    def voltage_limit(self):
        return self._voltage_limit

    def set_voltage_limit(self, limit):
        with self._lock:
            self._voltage_limit = clamp_voltage_limit(limit)
            return self._voltage_limit

    def snapshot(self):
        return self._nodes

    def tick(self, now=None):
        with self._lock:
            self._nodes = advance(self._nodes, self._voltage_limit, self._rng, now)
            self.tick_count += 1
        _LOGGER.debug("Tick %d over %d nodes", self.tick_count, len(self._nodes))
        return self._nodes

    def toggle(self, node_id):
        """
        Flip a node on or off. Lightbulb toggles are forwarded to the device
        link; the returned future (or None) may be ignored.
        """
        with self._lock:
            self._nodes = toggle(self._nodes, node_id)
            node = find_node(self._nodes, node_id)
        if node is not None and needs_relay(node) and self.device_link is not None:
            return self.device_link.send_relay_async(node.is_on)
        return None

    def add(self, name, kind):
        with self._lock:
            self._nodes = add(self._nodes, name, kind)
        return self._nodes

    def remove(self, node_id):
        with self._lock:
            self._nodes = remove(self._nodes, node_id)
        return self._nodes

    def annotate(self, node_id, prediction):
        with self._lock:
            self._nodes = annotate(self._nodes, node_id, prediction)
        return self._nodes

    def metrics(self):
        return aggregate(self._nodes)

    def billing(self):
        metrics = self.metrics()
        return project_billing(metrics.total_power, metrics.total_loss, self.rate_per_kwh)

# Runtime configuration for the EcoPulse dashboard
import os

# --- ENVIRONMENT ---

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", os.getenv("API_KEY", ""))
GEMINI_MODEL = os.getenv("ECOPULSE_MODEL", "gemini-3-flash-preview")

RATE_PER_KWH = float(os.getenv("ECOPULSE_RATE_PER_KWH", "0.14"))  # $ per kWh
TICK_MS = int(os.getenv("ECOPULSE_TICK_MS", "2000"))
DEVICE_ADDRESS = os.getenv("ECOPULSE_DEVICE_ADDRESS", "")
LOG_LEVEL = os.getenv("ECOPULSE_LOG_LEVEL", "INFO")
DEBUG = os.getenv("ECOPULSE_DEBUG", "false").lower() in ("1", "true", "yes")

# --- SIMULATION CONSTANTS ---

# Nominal power per appliance kind (W)
BASE_POWERS = {
    "lightbulb": 12,
    "fan": 55,
    "heater": 1500,
    "other": 100,
}
HISTORY_WINDOW = 20

JITTER_RANGE = (0.95, 1.05)
LOSS_FRACTION_RANGE = (0.03, 0.06)
VOLTAGE_FLOOR = 215
VOLTAGE_SPREAD = 10

VOLTAGE_LIMIT_MIN = 100
VOLTAGE_LIMIT_MAX = 230
DEFAULT_VOLTAGE_LIMIT = 230

# --- DEVICE LINK ---

RELAY_TIMEOUT_S = 2.0
PROBE_TIMEOUT_S = 3.0

# --- BROWSER STORAGE KEYS ---

SESSION_KEY = "ecoPulse_user"
DEVICE_ADDRESS_KEY = "ecoPulse_espIp"

# Best-effort HTTP link to a relay board on the local network.
# The board answers GET / (reachability) and GET /relay?state=0|1 (switch).
# Bodies and status codes are never interpreted: any answer within the timeout counts as delivered.
import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum

import requests

from ecopulse.config import PROBE_TIMEOUT_S, RELAY_TIMEOUT_S

_LOGGER = logging.getLogger(__name__)


class CommandResult(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    FAILURE = "failure"


class LinkStatus(str, Enum):
    IDLE = "idle"
    LINKING = "linking"
    CONNECTED = "connected"
    ERROR = "error"
    OFFLINE = "offline"


def relay_url(address, state):
    return f"http://{address.strip()}/relay?state={'1' if state else '0'}"


def probe_url(address):
    return f"http://{address.strip()}/"


def send_relay_command(address, state, timeout=RELAY_TIMEOUT_S):
    """Switch the relay on or off. Never raises; the outcome is the return value."""
    if not address or not address.strip():
        return CommandResult.FAILURE
    try:
        requests.get(relay_url(address, state), timeout=timeout)
    except requests.Timeout:
        _LOGGER.warning("Relay command to %s timed out after %.1fs", address, timeout)
        return CommandResult.TIMEOUT
    except requests.RequestException as err:
        _LOGGER.warning("Relay command to %s failed: %s", address, err)
        return CommandResult.FAILURE
    return CommandResult.SUCCESS


def probe(address, timeout=PROBE_TIMEOUT_S):
    """
    Check once whether the board answers. No retry: callers probe again only
    when the address changes.
    """
    if not address or not address.strip():
        return LinkStatus.IDLE
    try:
        requests.get(probe_url(address), timeout=timeout)
    except (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema):
        _LOGGER.warning("Device address %r does not form a valid URL", address)
        return LinkStatus.ERROR
    except requests.RequestException as err:
        _LOGGER.info("Device at %s is offline: %s", address, err)
        return LinkStatus.OFFLINE
    return LinkStatus.CONNECTED


class DeviceLink:
    """
    Sends relay commands off the caller's thread.
    A single worker keeps commands in issue order.
    """

    def __init__(self, address, timeout=RELAY_TIMEOUT_S):
        self.address = address
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ecopulse-relay")

    def send_relay_async(self, state, address=None):
        """
        Returns a Future resolving to a CommandResult; callers may ignore it.
        `address` overrides the link's default board for this one command.
        """
        return self._executor.submit(send_relay_command, address or self.address, state, self.timeout)

    def close(self):
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

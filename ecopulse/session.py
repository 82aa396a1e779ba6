# Local-only login session kept under a single browser storage key
import json
import logging
from dataclasses import asdict, dataclass

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class User:
    id: str
    email: str
    name: str

    def to_dict(self):
        return asdict(self)


def login(email):
    """
    Build the user record for an email address. There is no backend: any
    non-empty address is accepted and the display name is its local part.
    Returns None for an empty address.
    """
    email = (email or "").strip()
    if not email:
        return None
    return User(id="1", email=email, name=email.split("@")[0].upper())


def load_user(stored):
    """
    Read a stored session. Accepts the dict a dcc.Store hands back or a raw
    JSON string. Anything malformed counts as no session.
    """
    if not stored:
        return None
    try:
        data = json.loads(stored) if isinstance(stored, str) else stored
        return User(id=str(data["id"]), email=str(data["email"]), name=str(data["name"]))
    except (ValueError, TypeError, KeyError):
        _LOGGER.warning("Discarding malformed stored session")
        return None

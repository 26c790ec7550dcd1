import datetime
from dataclasses import dataclass, asdict
from typing import Optional, Dict, Any

# Relay frame types
REGISTER = "register"    # client -> relay: {"username", "publicKey"}
INIT = "init"            # relay -> client: {"users": [[username, publicKey], ...]}
NEW_USER = "newUser"     # relay -> all: {"username", "publicKey"}
MESSAGE = "message"      # both ways: {"username", "message"}
ERROR = "error"          # relay -> client: {"code"}

FRAME_TYPES = (REGISTER, INIT, NEW_USER, MESSAGE, ERROR)


def iso_now() -> str:
    '''Return current UTC time in ISO format'''
    now = datetime.datetime.now(datetime.timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%SZ")


# Only the relay's routing fields; security lives inside payload["message"].
@dataclass
class Frame:
    type: str                 # one of FRAME_TYPES
    sender: Optional[str]     # claimed username, None for relay-originated frames
    to: Optional[str]         # always "*" on a broadcast relay
    ts: str                   # ISO 8601
    payload: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Frame":
        '''
        Build a Frame from a decoded JSON object.
        Raises ValueError if a routing field is missing or has the wrong type.
        '''
        t = d.get("type")
        if t not in FRAME_TYPES:
            raise ValueError(f"unknown frame type: {t!r}")
        payload = d.get("payload")
        if not isinstance(payload, dict):
            raise ValueError("frame payload must be an object")
        sender = d.get("sender")
        if sender is not None and not isinstance(sender, str):
            raise ValueError("frame sender must be a string")
        return cls(type=t, sender=sender, to=d.get("to"), ts=str(d.get("ts", "")), payload=payload)


def make_frame(frame_type: str, payload: Dict[str, Any], sender: Optional[str] = None) -> Dict[str, Any]:
    '''Build a broadcast frame ready for send_json'''
    return Frame(type=frame_type, sender=sender, to="*", ts=iso_now(), payload=payload).to_dict()

"""
Envelope construction and parsing.

An envelope is the JSON object carried in the relay's generic message field.
Four variants exist, each recognised by its ``type`` field or, for senders
that omit it, by which fields are present.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Union

from relaychat.common.crypto import (
    hexd, rsa_encrypt, rsa_max_plaintext, rsa_verify, sha256_digest,
)
from .errors import (
    DecryptionFailure, MalformedEnvelope, MessageTooLarge, UnknownRecipient, UnusableKeyError,
)

logger = logging.getLogger(__name__)

ENC = "utf-8"

PUBLIC = "public"
PRIVATE = "private"
INTEGRITY = "integrity"
SIGNED = "signed"


@dataclass(frozen=True)
class PublicEnvelope:
    original_message: str


@dataclass(frozen=True)
class PrivateEnvelope:
    target: str
    ciphertext: bytes


@dataclass(frozen=True)
class IntegrityEnvelope:
    original_message: str
    digest: bytes


@dataclass(frozen=True)
class SignedEnvelope:
    original_message: str
    signature: bytes


Envelope = Union[PublicEnvelope, PrivateEnvelope, IntegrityEnvelope, SignedEnvelope]


def message_digest(message: str) -> bytes:
    return sha256_digest(message.encode(ENC))


# ---- build ----

def build_public(message: str) -> PublicEnvelope:
    return PublicEnvelope(original_message=message)


def build_integrity(message: str) -> IntegrityEnvelope:
    '''Seal message with its SHA-256 digest'''
    return IntegrityEnvelope(original_message=message, digest=message_digest(message))


def build_private(message: str, target: str, registry) -> PrivateEnvelope:
    '''
    Encrypt message for target under the key target registered.
    Input:
        - message: plaintext
        - target: recipient username
        - registry: PeerRegistry to find the recipient's key in
    Output: PrivateEnvelope
    Raises UnknownRecipient if target has no usable key, MessageTooLarge if
    the message does not fit in one OAEP block.
    '''
    try:
        pub = registry.public_key(target)
    except UnusableKeyError as e:
        logger.warning("%s", e)
        raise UnknownRecipient(target) from e
    if pub is None:
        raise UnknownRecipient(target)
    data = message.encode(ENC)
    limit = rsa_max_plaintext(pub)
    if len(data) > limit:
        raise MessageTooLarge(len(data), limit)
    return PrivateEnvelope(target=target, ciphertext=rsa_encrypt(pub, data))


def build_signed(message: str, identity) -> SignedEnvelope:
    '''Sign the UTF-8 bytes of message with the local identity'''
    return SignedEnvelope(original_message=message, signature=identity.sign(message.encode(ENC)))


# ---- verify / open ----

def verify_digest(env: IntegrityEnvelope) -> bool:
    ''' True when the received digest matches the received message '''
    return message_digest(env.original_message) == env.digest


def verify_signature(env: SignedEnvelope, public_key) -> bool:
    return rsa_verify(public_key, env.original_message.encode(ENC), env.signature)


def open_private(env: PrivateEnvelope, identity) -> str:
    '''
    Decrypt a confidential envelope addressed to us.
    Raises DecryptionFailure for the wrong key, altered ciphertext or
    plaintext that is not UTF-8.
    '''
    try:
        return identity.decrypt(env.ciphertext).decode(ENC)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecryptionFailure(f"could not decrypt message: {e}") from e


# ---- wire form ----

def to_wire(env: Envelope) -> Dict[str, Any]:
    if isinstance(env, PublicEnvelope):
        return {"type": PUBLIC, "originalMessage": env.original_message}
    if isinstance(env, PrivateEnvelope):
        return {"type": PRIVATE, "target": env.target, "ciphertext": env.ciphertext.hex()}
    if isinstance(env, IntegrityEnvelope):
        return {"type": INTEGRITY, "originalMessage": env.original_message, "hash": env.digest.hex()}
    if isinstance(env, SignedEnvelope):
        return {"type": SIGNED, "originalMessage": env.original_message, "signature": env.signature.hex()}
    raise TypeError(f"not an envelope: {type(env).__name__}")


def encode(env: Envelope) -> str:
    return json.dumps(to_wire(env), ensure_ascii=False)


def _infer_type(d: Dict[str, Any]) -> str:
    if "target" in d and "ciphertext" in d:
        return PRIVATE
    if "originalMessage" in d:
        if "hash" in d:
            return INTEGRITY
        if "signature" in d:
            return SIGNED
        return PUBLIC
    raise MalformedEnvelope("payload matches no envelope variant")


def _text(d: Dict[str, Any], key: str) -> str:
    v = d.get(key)
    if not isinstance(v, str):
        raise MalformedEnvelope(f"field {key!r} must be a string")
    return v


def _hex(d: Dict[str, Any], key: str) -> bytes:
    try:
        raw = hexd(_text(d, key))
    except ValueError as e:
        raise MalformedEnvelope(f"field {key!r} is not hex") from e
    if not raw:
        raise MalformedEnvelope(f"field {key!r} is empty")
    return raw


def from_wire(d: Any) -> Envelope:
    '''
    Build an envelope from a decoded JSON value.
    Raises MalformedEnvelope for anything that is not a well-formed variant.
    '''
    if not isinstance(d, dict):
        raise MalformedEnvelope("payload is not a JSON object")
    t = d.get("type")
    if t is None:
        t = _infer_type(d)
    if t == PUBLIC:
        return PublicEnvelope(original_message=_text(d, "originalMessage"))
    if t == PRIVATE:
        target = _text(d, "target")
        if not target:
            raise MalformedEnvelope("private envelope has an empty target")
        return PrivateEnvelope(target=target, ciphertext=_hex(d, "ciphertext"))
    if t == INTEGRITY:
        return IntegrityEnvelope(original_message=_text(d, "originalMessage"), digest=_hex(d, "hash"))
    if t == SIGNED:
        return SignedEnvelope(original_message=_text(d, "originalMessage"), signature=_hex(d, "signature"))
    raise MalformedEnvelope(f"unknown envelope type: {t!r}")


def decode(payload: Any) -> Envelope:
    '''
    Parse the relay's message field into an envelope.
    Raises MalformedEnvelope when the payload is not valid JSON or not an envelope.
    '''
    if not isinstance(payload, str):
        raise MalformedEnvelope("payload is not text")
    try:
        d = json.loads(payload)
    except (ValueError, RecursionError) as e:   # JSONDecodeError is a ValueError
        raise MalformedEnvelope(f"payload is not JSON: {e}") from e
    return from_wire(d)

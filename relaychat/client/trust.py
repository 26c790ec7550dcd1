"""
Trust decisions for inbound messages.

The relay attaches a claimed sender to every payload. TrustEvaluator turns
(claimed sender, payload) into a Verdict saying how far the content can be
believed. It never raises for bad input and never mutates the registry.
"""
import logging
from dataclasses import dataclass
from typing import Union

from . import envelope as codec
from .errors import DecryptionFailure, MalformedEnvelope, UnusableKeyError

logger = logging.getLogger(__name__)

INTEGRITY_MODE = "integrity"
CONFIDENTIALITY_MODE = "confidentiality"
AUTHENTICITY_MODE = "authenticity"
MODES = (INTEGRITY_MODE, CONFIDENTIALITY_MODE, AUTHENTICITY_MODE)

# envelope variants a receiver in each mode will trust
EXPECTED = {
    INTEGRITY_MODE: (codec.IntegrityEnvelope,),
    CONFIDENTIALITY_MODE: (codec.PublicEnvelope, codec.PrivateEnvelope),
    AUTHENTICITY_MODE: (codec.SignedEnvelope,),
}


@dataclass(frozen=True)
class Genuine:
    sender: str
    text: str


@dataclass(frozen=True)
class Plain:
    '''Public envelope: shown as-is, nothing was claimed about it'''
    sender: str
    text: str


@dataclass(frozen=True)
class Secret:
    '''Confidential envelope addressed to us, decrypted'''
    sender: str
    text: str


@dataclass(frozen=True)
class Tampered:
    sender: str
    text: str      # may be empty when the payload could not be parsed
    reason: str
    own: bool = False    # the tampered message was one we sent


@dataclass(frozen=True)
class Impersonated:
    sender: str
    text: str
    reason: str


@dataclass(frozen=True)
class Unverifiable:
    sender: str
    text: str
    reason: str


@dataclass(frozen=True)
class Opaque:
    '''Confidential envelope for someone else; only the ciphertext is visible'''
    sender: str
    target: str
    ciphertext_hex: str


@dataclass(frozen=True)
class DecryptionFailed:
    sender: str
    reason: str


@dataclass(frozen=True)
class SelfEcho:
    sender: str


Verdict = Union[Genuine, Plain, Secret, Tampered, Impersonated, Unverifiable, Opaque,
                DecryptionFailed, SelfEcho]


class TrustEvaluator:
    ''' Classifies inbound messages using the local identity and the peer registry '''

    def __init__(self, identity, registry):
        self.identity = identity
        self.registry = registry

    def evaluate(self, local_username: str, claimed_sender: str, payload, mode: str = INTEGRITY_MODE) -> Verdict:
        '''
        Decide how to present one inbound message.
        Input:
            - local_username: our registered username (not an assumed display name)
            - claimed_sender: username the relay says sent the message
            - payload: raw message field from the relay
            - mode: the receiver's current mode; envelopes of another variant and
              unparseable payloads get the least-trusted verdict for it
        Output: a Verdict
        '''
        own = claimed_sender == local_username
        try:
            env = codec.decode(payload)
        except MalformedEnvelope as e:
            logger.info("Malformed payload from %s: %s", claimed_sender, e)
            return self._malformed(claimed_sender, payload, mode, own)

        if not isinstance(env, EXPECTED.get(mode, ())):
            logger.info("%s envelope from %s rejected in %s mode", type(env).__name__, claimed_sender, mode)
            return self._wrong_variant(claimed_sender, env, payload, mode, own)

        try:
            if isinstance(env, codec.IntegrityEnvelope):
                return self._integrity(claimed_sender, env, own)
            if own:
                return SelfEcho(claimed_sender)
            if isinstance(env, codec.PrivateEnvelope):
                return self._private(local_username, claimed_sender, env)
            if isinstance(env, codec.SignedEnvelope):
                return self._signed(claimed_sender, env)
            return Plain(claimed_sender, env.original_message)
        except Exception:
            # any failure maps to the least-trusted verdict
            logger.exception("Unexpected failure evaluating message from %s", claimed_sender)
            return self._malformed(claimed_sender, payload, mode, own)

    def _malformed(self, sender: str, payload, mode: str, own: bool) -> Verdict:
        if mode == INTEGRITY_MODE:
            return Tampered(sender, "", "Invalid message format (tampered by server)", own=own)
        if own:
            return SelfEcho(sender)
        return Unverifiable(sender, payload if isinstance(payload, str) else repr(payload),
                            "non-standard message")

    def _wrong_variant(self, sender: str, env, payload, mode: str, own: bool) -> Verdict:
        text = getattr(env, "original_message", None)
        if mode == INTEGRITY_MODE:
            return Tampered(sender, text or "", "Message carries no hash (tampered by server)", own=own)
        if own:
            return SelfEcho(sender)
        reason = "message is not signed" if mode == AUTHENTICITY_MODE else "non-standard message"
        return Unverifiable(sender, text if text is not None else payload, reason)

    def _integrity(self, sender: str, env, own: bool) -> Verdict:
        if codec.verify_digest(env):
            return SelfEcho(sender) if own else Genuine(sender, env.original_message)
        return Tampered(sender, env.original_message, "Hash mismatch", own=own)

    def _private(self, local_username: str, sender: str, env) -> Verdict:
        if env.target != local_username:
            return Opaque(sender, env.target, env.ciphertext.hex())
        try:
            return Secret(sender, codec.open_private(env, self.identity))
        except DecryptionFailure as e:
            logger.warning("Could not decrypt message from %s", sender)
            return DecryptionFailed(sender, str(e))

    def _signed(self, sender: str, env) -> Verdict:
        try:
            pub = self.registry.public_key(sender)
        except UnusableKeyError as e:
            return Unverifiable(sender, env.original_message, str(e))
        if pub is None:
            return Unverifiable(sender, env.original_message, f"unknown user {sender}")
        if codec.verify_signature(env, pub):
            return Genuine(sender, env.original_message)
        return Impersonated(sender, env.original_message,
                            f"signature does not match the key registered for {sender}")

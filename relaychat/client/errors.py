"""Error kinds raised by the client-side protocol."""


class RelayChatError(Exception):
    """Base class for client protocol errors."""
    pass


class KeyGenerationFailure(RelayChatError):
    """The local keypair could not be generated. Fatal at startup."""
    pass


class UnknownRecipient(RelayChatError):
    """The secret target has no registered public key; the message is not sent."""

    def __init__(self, username: str):
        super().__init__(f"Unknown user or user has no public key: {username}")
        self.username = username


class MessageTooLarge(RelayChatError):
    """The plaintext does not fit in one RSA-OAEP block for the target key."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Message is {size} bytes, at most {limit} bytes can be encrypted")
        self.size = size
        self.limit = limit


class MalformedEnvelope(RelayChatError):
    """An inbound payload is not a well-formed envelope."""
    pass


class DecryptionFailure(RelayChatError):
    """A confidential envelope addressed to us could not be decrypted."""
    pass


class UnusableKeyError(RelayChatError):
    """A registered public key could not be parsed."""
    pass

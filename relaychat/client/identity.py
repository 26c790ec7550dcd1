import logging

from relaychat.common.crypto import (
    MIN_RSA_BITS, rsa_decrypt, rsa_fingerprint, rsa_generate, rsa_public_pem, rsa_sign,
)
from .errors import KeyGenerationFailure

logger = logging.getLogger(__name__)


class Identity:
    '''
    The local participant's RSA keypair. The private key stays inside this
    object: it is never serialized, sent or logged, and is only used by
    sign() and decrypt().
    '''

    def __init__(self, private_key):
        self.__private_key = private_key
        self._public_key = private_key.public_key()
        self._public_pem = rsa_public_pem(self._public_key)

    @classmethod
    def generate(cls, bits: int = MIN_RSA_BITS) -> "Identity":
        '''
        Create a fresh keypair for this process.
        Raises KeyGenerationFailure if the key cannot be generated.
        '''
        try:
            priv = rsa_generate(bits)
        except Exception as e:
            raise KeyGenerationFailure(f"could not generate a {bits}-bit RSA key: {e}") from e
        ident = cls(priv)
        logger.info("Generated %d-bit RSA identity %s", bits, ident.fingerprint()[:16])
        return ident

    @property
    def public_key(self):
        return self._public_key

    def public_pem(self) -> str:
        ''' PEM text advertised to the relay on register '''
        return self._public_pem

    def fingerprint(self) -> str:
        return rsa_fingerprint(self._public_key)

    def sign(self, data: bytes) -> bytes:
        return rsa_sign(self.__private_key, data)

    def decrypt(self, ciphertext: bytes) -> bytes:
        return rsa_decrypt(self.__private_key, ciphertext)

    def __repr__(self):
        return f"Identity(fingerprint={self.fingerprint()[:16]})"

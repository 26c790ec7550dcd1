import logging
from typing import Dict, Iterable, List, Optional

from relaychat.common.crypto import rsa_load_public
from .errors import UnusableKeyError

logger = logging.getLogger(__name__)


class PeerRegistry:
    '''
    Username -> advertised public key (PEM), filled from the relay's init and
    newUser events. This is a cache of what peers claimed, not a trust anchor:
    anyone can register any key under any name.
    '''

    def __init__(self):
        self._keys: Dict[str, str] = {}

    def insert(self, username: str, public_key_pem: str) -> bool:
        '''
        Upsert a peer's key, last write wins.
        Output: True if the entry was added or its key changed
        '''
        old = self._keys.get(username)
        if old == public_key_pem:
            return False
        self._keys[username] = public_key_pem
        if old is not None:
            logger.warning("Public key for %s was replaced", username)
        return True

    def load_init(self, pairs: Iterable) -> int:
        '''
        Bulk upsert from the relay's init snapshot.
        Input: iterable of (username, publicKey) pairs; malformed items are skipped
        Output: number of entries stored
        '''
        stored = 0
        for item in pairs:
            try:
                username, pem = item
            except (TypeError, ValueError):
                logger.warning("Skipping malformed init entry: %r", item)
                continue
            if not isinstance(username, str) or not isinstance(pem, str):
                logger.warning("Skipping malformed init entry: %r", item)
                continue
            self.insert(username, pem)
            stored += 1
        return stored

    def lookup(self, username: str) -> Optional[str]:
        return self._keys.get(username)

    def public_key(self, username: str):
        '''
        The parsed public key registered for username, or None if there is no entry.
        Parsed on every call; reading a key never changes the registry.
        Raises UnusableKeyError if the registered text is not an RSA public key.
        '''
        pem = self._keys.get(username)
        if pem is None:
            return None
        try:
            return rsa_load_public(pem)
        except ValueError as e:
            raise UnusableKeyError(f"registered key for {username} is unusable: {e}") from e

    def usernames(self) -> List[str]:
        return sorted(self._keys)

    def __contains__(self, username) -> bool:
        return username in self._keys

    def __len__(self) -> int:
        return len(self._keys)

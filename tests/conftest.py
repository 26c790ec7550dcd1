import socket

import pytest

from relaychat.client.identity import Identity
from relaychat.client.registry import PeerRegistry
from relaychat.common.protocol import forget


@pytest.fixture(scope="session")
def alice():
    return Identity.generate()


@pytest.fixture(scope="session")
def bob():
    return Identity.generate()


@pytest.fixture(scope="session")
def carol():
    return Identity.generate()


@pytest.fixture(scope="session")
def mallory():
    return Identity.generate()


@pytest.fixture
def registry(alice, bob, carol, mallory):
    # what every client learns from init/newUser after all four registered honestly
    reg = PeerRegistry()
    reg.insert("alice", alice.public_pem())
    reg.insert("bob", bob.public_pem())
    reg.insert("carol", carol.public_pem())
    reg.insert("mallory", mallory.public_pem())
    return reg


@pytest.fixture
def sockpair():
    a, b = socket.socketpair()
    a.settimeout(5)
    b.settimeout(5)
    yield a, b
    for s in (a, b):
        forget(s)
        s.close()

import pytest

from relaychat.client import envelope as codec
from relaychat.client.registry import PeerRegistry
from relaychat.client.trust import (
    AUTHENTICITY_MODE, CONFIDENTIALITY_MODE, INTEGRITY_MODE, MODES,
    DecryptionFailed, Genuine, Impersonated, Opaque, Plain, Secret, SelfEcho, Tampered,
    TrustEvaluator, Unverifiable,
)
from relaychat.server.main import tamper_payload


class NoDecrypt:
    '''Identity stand-in that fails the test if anyone tries to decrypt with it'''

    def decrypt(self, ciphertext):
        pytest.fail("bystander attempted decryption")


def test_secret_message_scenario(alice, bob, carol, registry):
    payload = codec.encode(codec.build_private("hi", "bob", registry))

    at_bob = TrustEvaluator(bob, registry).evaluate("bob", "alice", payload, CONFIDENTIALITY_MODE)
    assert at_bob == Secret("alice", "hi")

    at_carol = TrustEvaluator(carol, registry).evaluate("carol", "alice", payload, CONFIDENTIALITY_MODE)
    assert isinstance(at_carol, Opaque)
    assert at_carol.target == "bob"
    assert at_carol.ciphertext_hex == codec.decode(payload).ciphertext.hex()


def test_bystander_never_decrypts(registry):
    payload = codec.encode(codec.build_private("hi", "bob", registry))
    verdict = TrustEvaluator(NoDecrypt(), registry).evaluate("carol", "alice", payload, CONFIDENTIALITY_MODE)
    assert isinstance(verdict, Opaque)


def test_decryption_failure_is_reported(alice, bob):
    # "bob" is registered with alice's key, so bob cannot open what was sealed for it
    reg = PeerRegistry()
    reg.insert("bob", alice.public_pem())
    payload = codec.encode(codec.build_private("hi", "bob", reg))
    verdict = TrustEvaluator(bob, reg).evaluate("bob", "carol", payload, CONFIDENTIALITY_MODE)
    assert isinstance(verdict, DecryptionFailed)
    assert verdict.sender == "carol"


def test_mallory_impersonating_alice(mallory, bob, registry):
    payload = codec.encode(codec.build_signed("send money to mallory", mallory))
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "alice", payload, AUTHENTICITY_MODE)
    assert isinstance(verdict, Impersonated)
    assert verdict.text == "send money to mallory"


def test_genuine_signed_message(alice, bob, registry):
    payload = codec.encode(codec.build_signed("hello bob", alice))
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "alice", payload, AUTHENTICITY_MODE)
    assert verdict == Genuine("alice", "hello bob")


def test_altered_signed_text_is_impersonation(alice, bob, registry):
    payload = tamper_payload(codec.encode(codec.build_signed("hello bob", alice)), "rewrite")
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "alice", payload, AUTHENTICITY_MODE)
    assert isinstance(verdict, Impersonated)


def test_unknown_sender_is_unverifiable_not_fraud(alice, bob, registry):
    payload = codec.encode(codec.build_signed("hi", alice))
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "zed", payload, AUTHENTICITY_MODE)
    assert isinstance(verdict, Unverifiable)
    assert verdict.text == "hi"


def test_unusable_registered_key_is_unverifiable(alice, bob, registry):
    registry.insert("eve", "public key")
    payload = codec.encode(codec.build_signed("hi", alice))
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "eve", payload, AUTHENTICITY_MODE)
    assert isinstance(verdict, Unverifiable)


def test_impersonation_self_test(alice, registry):
    # alice claims to be bob; her own echo comes back under bob's name
    payload = codec.encode(codec.build_signed("it's me, bob", alice))
    verdict = TrustEvaluator(alice, registry).evaluate("alice", "bob", payload, AUTHENTICITY_MODE)
    assert isinstance(verdict, Impersonated)


def test_relay_corrupting_one_byte_is_tampering(bob, registry):
    payload = codec.encode(codec.build_integrity("hello"))
    corrupted = payload.replace("hello", "hellp")
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "alice", corrupted, INTEGRITY_MODE)
    assert isinstance(verdict, Tampered)
    assert verdict.text == "hellp"
    assert verdict.reason == "Hash mismatch"
    assert not verdict.own


def test_relay_breaking_the_format_is_tampering(bob, registry):
    payload = tamper_payload(codec.encode(codec.build_integrity("hello")), "append")
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "alice", payload, INTEGRITY_MODE)
    assert isinstance(verdict, Tampered)
    assert verdict.text == ""


def test_intact_integrity_message_is_genuine(bob, registry):
    payload = codec.encode(codec.build_integrity("hello"))
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "alice", payload, INTEGRITY_MODE)
    assert verdict == Genuine("alice", "hello")


def test_own_messages_are_suppressed(alice, registry):
    ev = TrustEvaluator(alice, registry)
    for env, mode in ((codec.build_integrity("x"), INTEGRITY_MODE),
                      (codec.build_signed("x", alice), AUTHENTICITY_MODE),
                      (codec.build_public("x"), CONFIDENTIALITY_MODE),
                      (codec.build_private("x", "bob", registry), CONFIDENTIALITY_MODE)):
        assert ev.evaluate("alice", "alice", codec.encode(env), mode) == SelfEcho("alice")


def test_own_tampered_message_warns_sender(alice, registry):
    ev = TrustEvaluator(alice, registry)
    payload = tamper_payload(codec.encode(codec.build_integrity("hello")), "rewrite")
    verdict = ev.evaluate("alice", "alice", payload, INTEGRITY_MODE)
    assert isinstance(verdict, Tampered)
    assert verdict.own

    broken = tamper_payload(codec.encode(codec.build_integrity("hello")), "append")
    assert ev.evaluate("alice", "alice", broken, INTEGRITY_MODE).own


def test_public_message_is_plain(bob, registry):
    payload = codec.encode(codec.build_public("hi all"))
    assert TrustEvaluator(bob, registry).evaluate("bob", "alice", payload, CONFIDENTIALITY_MODE) == Plain("alice", "hi all")


@pytest.mark.parametrize("mode", MODES)
@pytest.mark.parametrize("payload", [
    "hello (sus?)",
    "",
    "{",
    "null",
    '{"originalMessage": 1, "hash": "00"}',
    '{"target": "bob", "ciphertext": "not hex"}',
    '{"originalMessage": "hi", "signature": "00"}',
    None,
    ["list"],
])
def test_malformed_payload_never_genuine(bob, registry, mode, payload):
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "alice", payload, mode)
    assert not isinstance(verdict, (Genuine, Secret, Plain, SelfEcho))
    if mode == INTEGRITY_MODE:
        assert isinstance(verdict, (Tampered, Impersonated))
    else:
        assert isinstance(verdict, (Unverifiable, Impersonated))


def test_malformed_own_echo_outside_integrity_mode(bob, registry):
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "bob", "garbage", AUTHENTICITY_MODE)
    assert verdict == SelfEcho("bob")


def test_evaluation_does_not_touch_registry(mallory, bob, registry):
    before = {u: registry.lookup(u) for u in registry.usernames()}
    payload = codec.encode(codec.build_signed("x", mallory))
    TrustEvaluator(bob, registry).evaluate("bob", "newcomer", payload, AUTHENTICITY_MODE)
    assert {u: registry.lookup(u) for u in registry.usernames()} == before


def test_unsigned_message_rejected_in_authenticity_mode(bob, registry):
    ev = TrustEvaluator(bob, registry)
    # anyone can compute a digest, so it proves nothing about the sender
    hashed = codec.encode(codec.build_integrity("send money to mallory"))
    verdict = ev.evaluate("bob", "alice", hashed, AUTHENTICITY_MODE)
    assert verdict == Unverifiable("alice", "send money to mallory", "message is not signed")

    bare = '{"originalMessage": "send money to mallory"}'
    assert isinstance(ev.evaluate("bob", "alice", bare, AUTHENTICITY_MODE), Unverifiable)


def test_stripped_hash_is_tampering(bob, registry):
    ev = TrustEvaluator(bob, registry)
    verdict = ev.evaluate("bob", "alice", '{"originalMessage": "rewritten by relay"}', INTEGRITY_MODE)
    assert isinstance(verdict, Tampered)
    assert verdict.text == "rewritten by relay"


def test_own_stripped_hash_warns_sender(alice, registry):
    verdict = TrustEvaluator(alice, registry).evaluate(
        "alice", "alice", '{"originalMessage": "hello"}', INTEGRITY_MODE)
    assert isinstance(verdict, Tampered)
    assert verdict.own


@pytest.mark.parametrize("mode,build", [
    (INTEGRITY_MODE, lambda ident, reg: codec.build_signed("hi", ident)),
    (INTEGRITY_MODE, lambda ident, reg: codec.build_private("hi", "bob", reg)),
    (AUTHENTICITY_MODE, lambda ident, reg: codec.build_public("hi")),
    (AUTHENTICITY_MODE, lambda ident, reg: codec.build_private("hi", "bob", reg)),
    (CONFIDENTIALITY_MODE, lambda ident, reg: codec.build_integrity("hi")),
    (CONFIDENTIALITY_MODE, lambda ident, reg: codec.build_signed("hi", ident)),
])
def test_other_variants_get_least_trusted_verdict(alice, bob, registry, mode, build):
    payload = codec.encode(build(alice, registry))
    verdict = TrustEvaluator(bob, registry).evaluate("bob", "alice", payload, mode)
    expected = Tampered if mode == INTEGRITY_MODE else Unverifiable
    assert isinstance(verdict, expected)


def test_registry_state_unchanged_by_evaluation(alice, bob, registry):
    before = {k: dict(v) for k, v in vars(registry).items()}
    payload = codec.encode(codec.build_signed("hi", alice))
    assert TrustEvaluator(bob, registry).evaluate("bob", "alice", payload, AUTHENTICITY_MODE) == Genuine("alice", "hi")
    assert {k: dict(v) for k, v in vars(registry).items()} == before

import pytest

from jabterm.crypto import (
    EngineError,
    EngineUnavailable,
    OtrEngine,
    PgpEngine,
    UnavailableEngine,
    build_engines,
)


@pytest.fixture
def alice(tmp_path):
    engine = OtrEngine(key_file=tmp_path / "alice.json")
    engine.generate_key()
    return engine


@pytest.fixture
def bob(tmp_path):
    engine = OtrEngine(key_file=tmp_path / "bob.json")
    engine.generate_key()
    return engine


def _handshake(alice, bob):
    hello = alice.start("bob@example.org")
    answer = bob.decode("alice@example.org", hello)
    assert answer.went_secure and answer.reply
    done = alice.decode("bob@example.org", answer.reply)
    assert done.went_secure


def test_otr_handshake_and_messages(alice, bob):
    _handshake(alice, bob)
    assert alice.is_secure("bob@example.org")
    assert bob.is_secure("alice@example.org")

    wire = alice.encode("bob@example.org", "hello bob")
    assert OtrEngine.is_otr_message(wire)
    assert "hello bob" not in wire
    result = bob.decode("alice@example.org", wire)
    assert result.text == "hello bob"
    assert result.encrypted


def test_otr_fingerprints_match(alice, bob):
    _handshake(alice, bob)
    assert alice.peer_fingerprint("bob@example.org") == bob.fingerprint()
    assert len(bob.fingerprint().split()) == 5


def test_otr_end(alice, bob):
    _handshake(alice, bob)
    end = alice.end("bob@example.org")
    result = bob.decode("alice@example.org", end)
    assert result.went_insecure
    assert not bob.is_secure("alice@example.org")
    with pytest.raises(EngineError):
        alice.encode("bob@example.org", "late")


def test_otr_plain_text_passes_through(alice):
    assert alice.decode("bob@example.org", "hi").text == "hi"


def test_otr_hello_without_key(tmp_path, alice):
    keyless = OtrEngine(key_file=tmp_path / "none.json")
    result = keyless.decode("alice@example.org", alice.start("carol@example.org"))
    assert result.reply is None
    assert "use '/otr gen'" in result.notices[0]
    with pytest.raises(EngineError):
        keyless.start("alice@example.org")


def test_otr_shared_secret(alice, bob):
    _handshake(alice, bob)
    ask = alice.smp_secret("bob@example.org", "blue")
    pending = bob.decode("alice@example.org", ask)
    assert "wants to authenticate" in pending.notices[0]
    verdict = bob.smp_secret("alice@example.org", "blue")
    assert bob.is_trusted("alice@example.org")
    result = alice.decode("bob@example.org", verdict)
    assert result.notices == ["Authentication successful."]
    assert alice.is_trusted("bob@example.org")


def test_otr_question_wrong_answer(alice, bob):
    _handshake(alice, bob)
    ask = alice.smp_question("bob@example.org", "Favourite colour?", "blue")
    pending = bob.decode("alice@example.org", ask)
    assert "  Favourite colour?" in pending.notices
    verdict = bob.smp_answer("alice@example.org", "green")
    result = alice.decode("bob@example.org", verdict)
    assert result.notices == ["Authentication failed."]
    assert not alice.is_trusted("bob@example.org")


def test_otr_trust_persists(tmp_path, alice, bob):
    _handshake(alice, bob)
    alice.trust("bob@example.org")
    reloaded = OtrEngine(key_file=tmp_path / "alice.json")
    assert reloaded.has_key()
    assert reloaded.fingerprint() == alice.fingerprint()
    assert bob.fingerprint() in reloaded._trusted


def test_pgp_round_trip(tmp_path):
    alice = PgpEngine(key_file=tmp_path / "alice-pgp.json")
    bob = PgpEngine(key_file=tmp_path / "bob-pgp.json")
    key_id = alice.set_key("bob@example.org", bob.public_key())
    assert key_id == bob.fingerprint()
    assert alice.contacts() == {"bob@example.org": key_id}

    payload = alice.encode("bob@example.org", "secret plans")
    assert bob.decode("alice@example.org", payload) == "secret plans"


def test_pgp_without_key(tmp_path):
    pgp = PgpEngine(key_file=tmp_path / "pgp.json")
    with pytest.raises(EngineError, match="No PGP key found for bob@example.org."):
        pgp.start("bob@example.org")
    with pytest.raises(EngineError):
        pgp.set_key("bob@example.org", "bm90IGEga2V5")


def test_pgp_tampered_payload(tmp_path):
    alice = PgpEngine(key_file=tmp_path / "a.json")
    bob = PgpEngine(key_file=tmp_path / "b.json")
    alice.set_key("bob@example.org", bob.public_key())
    payload = alice.encode("bob@example.org", "x")
    with pytest.raises(EngineError):
        bob.decode("alice@example.org", payload[:-4] + "AAAA")


def test_unavailable_engine():
    engine = UnavailableEngine("OTR")
    assert not engine.available
    assert not engine.is_secure("bob@example.org")
    with pytest.raises(EngineUnavailable):
        engine.start("bob@example.org")


def test_build_engines_can_disable():
    otr, pgp = build_engines(otr=False, pgp=False)
    assert not otr.available
    assert not pgp.available

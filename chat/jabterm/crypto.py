"""End-to-end encryption engines.

Two optional engines plug into the dispatchers through one interface:

``OtrEngine``
    Off-the-record style sessions negotiated in the message body.  Each
    side owns a long-term X25519 identity key; a session starts with an
    ephemeral X25519 exchange (``?JTOTR:HELLO`` / ``?JTOTR:ACK``) and the
    session key mixes both the ephemeral and the identity agreements, so
    only the holders of the two identity keys can read the traffic.
    Fingerprints of identity keys can be trusted manually or through a
    shared-secret check.

``PgpEngine``
    Static-key encryption.  Contacts' public keys are assigned by hand; each
    message is sealed to the recipient's key with a fresh ephemeral key.

An engine disabled at startup is replaced by ``UnavailableEngine`` so
callers never have to test for ``None``.
"""
from __future__ import annotations

import base64
import dataclasses
import hashlib
import hmac
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

import jabterm.config as _cfg

log = logging.getLogger(__name__)


class EngineError(Exception):
    pass


class EngineUnavailable(EngineError):
    pass


# ── Primitives ────────────────────────────────────────────────────────────────

def sha256_hex(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


def _b64(b: bytes) -> str:
    return base64.b64encode(b).decode()


def _unb64(s: str) -> bytes:
    try:
        return base64.b64decode(s, validate=True)
    except ValueError as e:
        raise EngineError(f"Malformed encoded data: {e}") from e


def _raw_private(key: X25519PrivateKey) -> bytes:
    return key.private_bytes(
        serialization.Encoding.Raw,
        serialization.PrivateFormat.Raw,
        serialization.NoEncryption(),
    )


def _raw_public(key: X25519PublicKey) -> bytes:
    return key.public_bytes(serialization.Encoding.Raw, serialization.PublicFormat.Raw)


def _load_public(raw: bytes) -> X25519PublicKey:
    if len(raw) != 32:
        raise EngineError("Public keys are 32 bytes")
    return X25519PublicKey.from_public_bytes(raw)


def derive_key(secret: bytes, salt: bytes, info: bytes) -> bytes:
    """Derive a 256-bit AES key using HKDF-SHA256."""
    hkdf = HKDF(algorithm=hashes.SHA256(), length=32, salt=salt, info=info)
    return hkdf.derive(secret)


def seal(key: bytes, plaintext: bytes, aad: bytes) -> bytes:
    """AES-256-GCM encrypt; returns ``nonce || ciphertext+tag``."""
    nonce = os.urandom(12)
    return nonce + AESGCM(key).encrypt(nonce, plaintext, aad)


def unseal(key: bytes, data: bytes, aad: bytes) -> bytes:
    if len(data) < 12 + 16:
        raise EngineError("Encrypted data is truncated")
    try:
        return AESGCM(key).decrypt(data[:12], data[12:], aad)
    except InvalidTag as e:
        raise EngineError("Message failed authentication") from e


def format_fingerprint(raw_public: bytes) -> str:
    digest = sha256_hex(raw_public)[:40].upper()
    return " ".join(digest[i:i + 8] for i in range(0, 40, 8))


def _write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    tmp.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
    tmp.replace(path)


# ── Engine interface ──────────────────────────────────────────────────────────

class EncryptionEngine:
    name = ""
    available = True

    def is_secure(self, jid: str) -> bool:
        raise NotImplementedError

    def is_trusted(self, jid: str) -> bool:
        raise NotImplementedError

    def start(self, jid: str):
        raise NotImplementedError

    def end(self, jid: str):
        raise NotImplementedError

    def encode(self, jid: str, text: str) -> str:
        raise NotImplementedError

    def decode(self, jid: str, body: str):
        raise NotImplementedError

    def fingerprint(self) -> str:
        raise NotImplementedError

    def peer_fingerprint(self, jid: str) -> str:
        raise NotImplementedError


class UnavailableEngine(EncryptionEngine):
    available = False

    def __init__(self, name: str) -> None:
        self.name = name

    def _refuse(self):
        raise EngineUnavailable(f"{self.name} support is not available in this build.")

    def is_secure(self, jid: str) -> bool:
        return False

    def is_trusted(self, jid: str) -> bool:
        return False

    def start(self, jid: str):
        self._refuse()

    def end(self, jid: str):
        return None

    def encode(self, jid: str, text: str) -> str:
        self._refuse()

    def decode(self, jid: str, body: str):
        self._refuse()

    def fingerprint(self) -> str:
        self._refuse()

    def peer_fingerprint(self, jid: str) -> str:
        self._refuse()


# ---------------------------------------------------------------------------
# Off-the-record style engine
# ---------------------------------------------------------------------------

OTR_PREFIX = "?JTOTR:"
_OTR_INFO = b"jabterm-otr-v1"
_OTR_AAD = b"jabterm-otr-msg"


@dataclasses.dataclass
class OtrResult:
    """Outcome of feeding one inbound message body to the OTR engine."""
    text: Optional[str] = None          # plaintext to show, if any
    reply: Optional[str] = None         # body to send back, if any
    encrypted: bool = False             # text arrived inside the session
    went_secure: bool = False
    went_insecure: bool = False
    notices: List[str] = dataclasses.field(default_factory=list)
    trust_changed: Optional[bool] = None


@dataclasses.dataclass
class _OtrSession:
    ephemeral: X25519PrivateKey
    key: bytes = b""
    peer_identity: bytes = b""
    secure: bool = False
    my_secret: str = ""                 # secret set via /otr secret or /otr answer
    peer_proof: str = ""                # proof received before we had a secret
    question: str = ""


class OtrEngine(EncryptionEngine):
    name = "OTR"

    def __init__(self, key_file: Optional[Path] = None) -> None:
        self.key_file = key_file
        self._identity: Optional[X25519PrivateKey] = None
        self._trusted: Set[str] = set()
        self._sessions: Dict[str, _OtrSession] = {}
        self._load()

    # ── Keys ──────────────────────────────────────────────────────────────────

    def _file(self) -> Path:
        return self.key_file or (_cfg.KEYS_DIR / "otr.json")

    def _load(self) -> None:
        path = self._file()
        if not path.exists():
            return
        data = json.loads(path.read_text(encoding="utf-8"))
        if data.get("private"):
            self._identity = X25519PrivateKey.from_private_bytes(_unb64(data["private"]))
        self._trusted = set(data.get("trusted", []))

    def _save(self) -> None:
        data = {"trusted": sorted(self._trusted)}
        if self._identity is not None:
            data["private"] = _b64(_raw_private(self._identity))
        _write_json(self._file(), data)

    def has_key(self) -> bool:
        return self._identity is not None

    def generate_key(self) -> str:
        self._identity = X25519PrivateKey.generate()
        self._save()
        log.info("generated OTR identity key")
        return self.fingerprint()

    def _require_key(self) -> X25519PrivateKey:
        if self._identity is None:
            raise EngineError("You have not generated or loaded a private key, use '/otr gen'")
        return self._identity

    def fingerprint(self) -> str:
        return format_fingerprint(_raw_public(self._require_key().public_key()))

    def peer_fingerprint(self, jid: str) -> str:
        session = self._sessions.get(jid)
        if session is None or not session.secure:
            raise EngineError("You are not currently in an OTR session.")
        return format_fingerprint(session.peer_identity)

    # ── Session state ─────────────────────────────────────────────────────────

    def is_secure(self, jid: str) -> bool:
        session = self._sessions.get(jid)
        return bool(session and session.secure)

    def is_trusted(self, jid: str) -> bool:
        session = self._sessions.get(jid)
        if session is None or not session.secure:
            return False
        return format_fingerprint(session.peer_identity) in self._trusted

    def trust(self, jid: str) -> None:
        self._trusted.add(self.peer_fingerprint(jid))
        self._save()

    def untrust(self, jid: str) -> None:
        self._trusted.discard(self.peer_fingerprint(jid))
        self._save()

    def _hello(self, kind: str, session: _OtrSession) -> str:
        identity = self._require_key()
        eph_pub = _raw_public(session.ephemeral.public_key())
        id_pub = _raw_public(identity.public_key())
        return f"{OTR_PREFIX}{kind}:{_b64(eph_pub)}:{_b64(id_pub)}"

    def _establish(self, session: _OtrSession, peer_eph: bytes, peer_id: bytes) -> None:
        identity = self._require_key()
        eph_shared = session.ephemeral.exchange(_load_public(peer_eph))
        id_shared = identity.exchange(_load_public(peer_id))
        my_eph = _raw_public(session.ephemeral.public_key())
        salt = b"".join(sorted([my_eph, peer_eph]))
        session.key = derive_key(eph_shared + id_shared, salt, _OTR_INFO)
        session.peer_identity = peer_id
        session.secure = True

    def start(self, jid: str) -> str:
        """Begin a session with *jid*; returns the body to send."""
        self._require_key()
        session = _OtrSession(ephemeral=X25519PrivateKey.generate())
        self._sessions[jid] = session
        return self._hello("HELLO", session)

    def end(self, jid: str) -> Optional[str]:
        """Tear down the session; returns the body to send, if there was one."""
        session = self._sessions.pop(jid, None)
        if session is None or not session.secure:
            return None
        return f"{OTR_PREFIX}END"

    def encode(self, jid: str, text: str) -> str:
        session = self._sessions.get(jid)
        if session is None or not session.secure:
            raise EngineError("You are not currently in an OTR session.")
        return f"{OTR_PREFIX}MSG:{_b64(seal(session.key, text.encode('utf-8'), _OTR_AAD))}"

    @staticmethod
    def is_otr_message(body: str) -> bool:
        return body.startswith(OTR_PREFIX)

    def decode(self, jid: str, body: str) -> OtrResult:
        if not body.startswith(OTR_PREFIX):
            return OtrResult(text=body)
        kind, _, rest = body[len(OTR_PREFIX):].partition(":")

        if kind == "HELLO":
            if self._identity is None:
                return OtrResult(notices=[
                    f"{jid} wants to start an OTR session, "
                    "use '/otr gen' to create a key and then '/otr start'."
                ])
            peer_eph, peer_id = self._parse_hello(rest)
            session = _OtrSession(ephemeral=X25519PrivateKey.generate())
            self._establish(session, peer_eph, peer_id)
            self._sessions[jid] = session
            return OtrResult(reply=self._hello("ACK", session), went_secure=True)

        if kind == "ACK":
            session = self._sessions.get(jid)
            if session is None or session.secure:
                log.warning("unexpected OTR ACK from %s", jid)
                return OtrResult()
            peer_eph, peer_id = self._parse_hello(rest)
            self._establish(session, peer_eph, peer_id)
            return OtrResult(went_secure=True)

        if kind == "END":
            was_secure = self.is_secure(jid)
            self._sessions.pop(jid, None)
            return OtrResult(went_insecure=was_secure)

        session = self._sessions.get(jid)
        if session is None or not session.secure:
            return OtrResult(notices=[
                f"Received an OTR message from {jid} but no session is active."
            ])

        if kind == "MSG":
            plaintext = unseal(session.key, _unb64(rest), _OTR_AAD)
            return OtrResult(text=plaintext.decode("utf-8"), encrypted=True)

        if kind == "SMP":
            return self._on_smp(jid, session, rest)

        raise EngineError(f"Unknown OTR message type: {kind}")

    @staticmethod
    def _parse_hello(rest: str) -> Tuple[bytes, bytes]:
        parts = rest.split(":")
        if len(parts) != 2:
            raise EngineError("Malformed OTR handshake")
        return _unb64(parts[0]), _unb64(parts[1])

    # ── Shared-secret verification ────────────────────────────────────────────

    @staticmethod
    def _proof(session: _OtrSession, secret: str) -> str:
        return hmac.new(session.key, b"smp|" + secret.encode("utf-8"), hashlib.sha256).hexdigest()

    def _secure_session(self, jid: str) -> _OtrSession:
        session = self._sessions.get(jid)
        if session is None or not session.secure:
            raise EngineError("You are not currently in an OTR session.")
        return session

    def _verdict(self, jid: str, session: _OtrSession, proof: str) -> Tuple[bool, str]:
        ok = hmac.compare_digest(self._proof(session, session.my_secret), proof)
        if ok:
            self._trusted.add(format_fingerprint(session.peer_identity))
            self._save()
        session.my_secret = session.peer_proof = session.question = ""
        return ok, f"{OTR_PREFIX}SMP:R:{'ok' if ok else 'fail'}"

    def smp_secret(self, jid: str, secret: str) -> str:
        """Set the shared secret for *jid*; returns the body to send."""
        session = self._secure_session(jid)
        session.my_secret = secret
        if session.peer_proof:
            ok, reply = self._verdict(jid, session, session.peer_proof)
            return reply
        return f"{OTR_PREFIX}SMP:S:{self._proof(session, secret)}"

    def smp_question(self, jid: str, question: str, answer: str) -> str:
        session = self._secure_session(jid)
        session.my_secret = answer
        encoded = _b64(question.encode("utf-8"))
        return f"{OTR_PREFIX}SMP:Q:{encoded}:{self._proof(session, answer)}"

    def smp_answer(self, jid: str, answer: str) -> str:
        session = self._secure_session(jid)
        if not session.peer_proof:
            raise EngineError("No authentication question is pending.")
        session.my_secret = answer
        ok, reply = self._verdict(jid, session, session.peer_proof)
        return reply

    def _on_smp(self, jid: str, session: _OtrSession, rest: str) -> OtrResult:
        step, _, payload = rest.partition(":")
        if step == "S":
            if session.my_secret:
                ok, reply = self._verdict(jid, session, payload)
                notice = "Authentication successful." if ok else "Authentication failed."
                return OtrResult(reply=reply, notices=[notice], trust_changed=ok)
            session.peer_proof = payload
            return OtrResult(notices=[
                f"{jid} wants to authenticate your identity, use '/otr secret <secret>'."
            ])
        if step == "Q":
            encoded, _, proof = payload.partition(":")
            session.peer_proof = proof
            session.question = _unb64(encoded).decode("utf-8")
            return OtrResult(notices=[
                f"{jid} wants to authenticate your identity with the following question:",
                f"  {session.question}",
                "use '/otr answer <answer>'.",
            ])
        if step == "R":
            ok = payload == "ok"
            if ok:
                self._trusted.add(format_fingerprint(session.peer_identity))
                self._save()
            session.my_secret = ""
            notice = "Authentication successful." if ok else "Authentication failed."
            return OtrResult(notices=[notice], trust_changed=ok)
        raise EngineError(f"Unknown OTR verification step: {step}")


# ---------------------------------------------------------------------------
# Static-key engine
# ---------------------------------------------------------------------------

_PGP_INFO = b"jabterm-pgp-v1"
_PGP_AAD = b"jabterm-pgp-msg"


def key_id(raw_public: bytes) -> str:
    return sha256_hex(raw_public)[:16].upper()


class PgpEngine(EncryptionEngine):
    name = "PGP"

    def __init__(self, key_file: Optional[Path] = None) -> None:
        self.key_file = key_file
        self._private: Optional[X25519PrivateKey] = None
        self._contacts: Dict[str, bytes] = {}
        self._load()

    def _file(self) -> Path:
        return self.key_file or (_cfg.KEYS_DIR / "pgp.json")

    def _load(self) -> None:
        path = self._file()
        if not path.exists():
            return
        data = json.loads(path.read_text(encoding="utf-8"))
        if data.get("private"):
            self._private = X25519PrivateKey.from_private_bytes(_unb64(data["private"]))
        self._contacts = {jid: _unb64(pub) for jid, pub in data.get("contacts", {}).items()}

    def _save(self) -> None:
        data: dict = {"contacts": {jid: _b64(pub) for jid, pub in sorted(self._contacts.items())}}
        if self._private is not None:
            data["private"] = _b64(_raw_private(self._private))
        _write_json(self._file(), data)

    def _own_key(self) -> X25519PrivateKey:
        if self._private is None:
            self._private = X25519PrivateKey.generate()
            self._save()
            log.info("generated PGP key pair")
        return self._private

    def public_key(self) -> str:
        return _b64(_raw_public(self._own_key().public_key()))

    def fingerprint(self) -> str:
        return key_id(_raw_public(self._own_key().public_key()))

    def peer_fingerprint(self, jid: str) -> str:
        pub = self._contacts.get(jid)
        if pub is None:
            raise EngineError(f"No PGP key found for {jid}.")
        return key_id(pub)

    def set_key(self, jid: str, public_b64: str) -> str:
        raw = _unb64(public_b64)
        _load_public(raw)
        self._contacts[jid] = raw
        self._save()
        return key_id(raw)

    def contacts(self) -> Dict[str, str]:
        return {jid: key_id(pub) for jid, pub in sorted(self._contacts.items())}

    def is_secure(self, jid: str) -> bool:
        return jid in self._contacts

    def is_trusted(self, jid: str) -> bool:
        return jid in self._contacts

    def start(self, jid: str) -> None:
        if jid not in self._contacts:
            raise EngineError(f"No PGP key found for {jid}.")

    def end(self, jid: str) -> None:
        return None

    def encode(self, jid: str, text: str) -> str:
        recipient = self._contacts.get(jid)
        if recipient is None:
            raise EngineError(f"No PGP key found for {jid}.")
        ephemeral = X25519PrivateKey.generate()
        eph_pub = _raw_public(ephemeral.public_key())
        shared = ephemeral.exchange(_load_public(recipient))
        key = derive_key(shared, eph_pub + recipient, _PGP_INFO)
        return _b64(eph_pub + seal(key, text.encode("utf-8"), _PGP_AAD))

    def decode(self, jid: str, body: str) -> str:
        data = _unb64(body)
        if len(data) < 32:
            raise EngineError("Encrypted payload is truncated")
        own = self._own_key()
        eph_pub, sealed = data[:32], data[32:]
        shared = own.exchange(_load_public(eph_pub))
        key = derive_key(shared, eph_pub + _raw_public(own.public_key()), _PGP_INFO)
        return unseal(key, sealed, _PGP_AAD).decode("utf-8")


def build_engines(otr: bool = True, pgp: bool = True) -> Tuple[EncryptionEngine, EncryptionEngine]:
    return (
        OtrEngine() if otr else UnavailableEngine("OTR"),
        PgpEngine() if pgp else UnavailableEngine("PGP"),
    )

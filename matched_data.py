"""
matched_data.py
Format: matched data v3

Decryption core for firewall "matched data" payload logs:
HPKE base mode, DHKEM(X25519, HKDF-SHA256) + HKDF-SHA256 + ChaCha20-Poly1305
(RFC 9180: DHKEM in section 4.1, key schedule in 5.1, nonce and open in 5.2).

Envelope layout (v3):

    version (1) | encapped key (32) | length, u64 LE (8) | ciphertext | tag (16)

Python 3.11+
"""

from __future__ import annotations
import base64
import hmac
import logging
import struct
from dataclasses import dataclass, field
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.asymmetric import x25519
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDFExpand


logger = logging.getLogger(__name__)

HPKE_VERSION_LABEL = b"HPKE-v1"
MODE_BASE = 0x00
LENGTH_SIZE = 8


class MatchedDataError(Exception):
    """Base exception for matched data errors."""


class MalformedEnvelope(MatchedDataError):
    """Blob does not have the shape of an encrypted matched data envelope."""


class UnsupportedFormat(MalformedEnvelope):
    """Envelope version byte names no known suite."""

    def __init__(self, version: int, supported: list[int]) -> None:
        self.version = version
        self.supported = supported
        expected = ", ".join(f"'{v}'" for v in supported)
        super().__init__(
            f"Encryption format not supported, expected {expected}, got '{version}'"
        )


class DecapsulationError(MatchedDataError):
    """Encapsulated key could not be decapsulated."""


class AuthenticationFailure(MatchedDataError):
    """Sealed payload failed authentication."""


class InvalidPrivateKey(MatchedDataError):
    """Private key bytes are not a valid X25519 scalar."""


# ---------------------------------------------------------------------------
# Suites
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Suite:
    """Fixed HPKE cipher suite bound to an envelope version byte."""
    version: int
    name: str
    kem_id: int
    kdf_id: int
    aead_id: int
    enc_size: int
    secret_size: int
    key_size: int
    nonce_size: int
    tag_size: int
    hash_size: int
    hash_algorithm: type[hashes.HashAlgorithm] = field(repr=False)
    aead: type[ChaCha20Poly1305] = field(repr=False)

    @property
    def kem_suite_id(self) -> bytes:
        return b"KEM" + struct.pack(">H", self.kem_id)

    @property
    def hpke_suite_id(self) -> bytes:
        return b"HPKE" + struct.pack(">HHH", self.kem_id, self.kdf_id, self.aead_id)

    @property
    def min_envelope_size(self) -> int:
        return 1 + self.enc_size + LENGTH_SIZE + self.tag_size


SUITES: dict[int, Suite] = {
    0x03: Suite(
        version=0x03,
        name="DHKEM(X25519, HKDF-SHA256), HKDF-SHA256, ChaCha20Poly1305",
        kem_id=0x0020,
        kdf_id=0x0001,
        aead_id=0x0003,
        enc_size=32,
        secret_size=32,
        key_size=32,
        nonce_size=12,
        tag_size=16,
        hash_size=32,
        hash_algorithm=hashes.SHA256,
        aead=ChaCha20Poly1305,
    ),
}

MIN_ENVELOPE_SIZE = min(s.min_envelope_size for s in SUITES.values())


def get_suite(version: int) -> Suite:
    """Look up the suite for an envelope version byte."""
    try:
        return SUITES[version]
    except KeyError:
        raise UnsupportedFormat(version, sorted(SUITES)) from None


# ---------------------------------------------------------------------------
# Key Management
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KeyPair:
    """Raw X25519 key pair."""
    private_key: bytes = field(repr=False)
    public_key: bytes

    def to_dict(self) -> dict[str, str]:
        """Standard padded base64 rendering of both keys."""
        return {
            "private_key": base64.b64encode(self.private_key).decode("ascii"),
            "public_key": base64.b64encode(self.public_key).decode("ascii"),
        }


def _raw_public_bytes(public_key: x25519.X25519PublicKey) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.Raw,
        serialization.PublicFormat.Raw,
    )


def generate_key_pair() -> KeyPair:
    """Generate X25519 key pair from the OpenSSL CSPRNG."""
    private_key = x25519.X25519PrivateKey.generate()
    private_raw = private_key.private_bytes(
        serialization.Encoding.Raw,
        serialization.PrivateFormat.Raw,
        serialization.NoEncryption(),
    )
    return KeyPair(private_key=private_raw, public_key=_raw_public_bytes(private_key.public_key()))


def load_private_key(data: bytes) -> x25519.X25519PrivateKey:
    """Load raw 32-byte X25519 private key."""
    if len(data) != 32:
        raise InvalidPrivateKey(f"expected 32 bytes, got {len(data)}")
    try:
        return x25519.X25519PrivateKey.from_private_bytes(bytes(data))
    except ValueError:
        raise InvalidPrivateKey("private key rejected") from None


def public_key_for(private_key: bytes | x25519.X25519PrivateKey) -> bytes:
    """Raw public key belonging to a private key."""
    if isinstance(private_key, (bytes, bytearray)):
        private_key = load_private_key(private_key)
    return _raw_public_bytes(private_key.public_key())


# ---------------------------------------------------------------------------
# Binary Format
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Envelope:
    """Parsed encrypted matched data blob."""
    suite: Suite
    encapped_key: bytes
    length: int
    sealed: bytes

    @property
    def version(self) -> int:
        return self.suite.version

    @property
    def ciphertext(self) -> bytes:
        return self.sealed[:-self.suite.tag_size]

    @property
    def tag(self) -> bytes:
        return self.sealed[-self.suite.tag_size:]

    def to_bytes(self) -> bytes:
        """Serialize back to the wire layout."""
        return b"".join(
            [
                struct.pack("<B", self.suite.version),
                self.encapped_key,
                struct.pack("<Q", self.length),
                self.sealed,
            ]
        )


def parse_envelope(blob: bytes) -> Envelope:
    """Parse envelope structure; no cryptographic checks."""
    if len(blob) < MIN_ENVELOPE_SIZE:
        raise MalformedEnvelope(
            f"envelope too short: {len(blob)} bytes, need at least {MIN_ENVELOPE_SIZE}"
        )

    suite = get_suite(blob[0])
    if len(blob) < suite.min_envelope_size:
        raise MalformedEnvelope(f"envelope too short for suite 0x{suite.version:02x}")

    offset = 1

    encapped_key = bytes(blob[offset:offset + suite.enc_size])
    offset += suite.enc_size

    (length,) = struct.unpack("<Q", blob[offset:offset + LENGTH_SIZE])
    offset += LENGTH_SIZE

    sealed_size = length + suite.tag_size
    if sealed_size > len(blob) - offset:
        raise MalformedEnvelope(
            f"length field {length} exceeds remaining {len(blob) - offset - suite.tag_size} bytes"
        )
    # bytes past the tag are ignored
    sealed = bytes(blob[offset:offset + sealed_size])

    logger.debug("parsed v%d envelope, %d byte ciphertext", suite.version, length)
    return Envelope(suite=suite, encapped_key=encapped_key, length=length, sealed=sealed)


# ---------------------------------------------------------------------------
# HPKE Primitives
# ---------------------------------------------------------------------------

def _wipe(buf: bytearray) -> None:
    for i in range(len(buf)):
        buf[i] = 0


def _extract(suite: Suite, salt: bytes, ikm: bytes) -> bytes:
    h = crypto_hmac.HMAC(salt or b"\x00" * suite.hash_size, suite.hash_algorithm())
    h.update(ikm)
    return h.finalize()


def _expand(suite: Suite, prk: bytes, info: bytes, length: int) -> bytes:
    hkdf = HKDFExpand(
        algorithm=suite.hash_algorithm(),
        length=length,
        info=info,
    )
    return hkdf.derive(bytes(prk))


def labeled_extract(suite: Suite, suite_id: bytes, salt: bytes, label: bytes, ikm: bytes) -> bytes:
    """RFC 9180 LabeledExtract."""
    return _extract(suite, salt, HPKE_VERSION_LABEL + suite_id + label + ikm)


def labeled_expand(
    suite: Suite, suite_id: bytes, prk: bytes, label: bytes, info: bytes, length: int
) -> bytes:
    """RFC 9180 LabeledExpand."""
    labeled_info = struct.pack(">H", length) + HPKE_VERSION_LABEL + suite_id + label + info
    return _expand(suite, prk, labeled_info, length)


def extract_and_expand(suite: Suite, dh: bytes, kem_context: bytes) -> bytearray:
    """DHKEM shared secret from a raw Diffie-Hellman output."""
    eae_prk = bytearray(labeled_extract(suite, suite.kem_suite_id, b"", b"eae_prk", bytes(dh)))
    try:
        return bytearray(
            labeled_expand(
                suite, suite.kem_suite_id, eae_prk, b"shared_secret", kem_context, suite.secret_size
            )
        )
    finally:
        _wipe(eae_prk)


def decapsulate(
    suite: Suite, private_key: x25519.X25519PrivateKey, encapped_key: bytes
) -> bytearray:
    """DHKEM Decap: recover the shared secret for an encapsulated key."""
    try:
        ephemeral = x25519.X25519PublicKey.from_public_bytes(encapped_key)
        dh = bytearray(private_key.exchange(ephemeral))
    except ValueError:
        # low order points make OpenSSL refuse the exchange
        raise DecapsulationError("decapsulation failed") from None

    try:
        if hmac.compare_digest(bytes(dh), bytes(len(dh))):
            raise DecapsulationError("decapsulation failed")
        kem_context = encapped_key + _raw_public_bytes(private_key.public_key())
        return extract_and_expand(suite, dh, kem_context)
    finally:
        _wipe(dh)


class DecryptionContext:
    """Receiver context for one envelope: AEAD key, base nonce, sequence."""

    def __init__(self, suite: Suite, key: bytearray, base_nonce: bytearray) -> None:
        self.suite = suite
        self._key = key
        self._base_nonce = base_nonce
        self.seq = 0

    def compute_nonce(self, seq: int) -> bytes:
        return compute_nonce(self._base_nonce, seq)

    def open(self, sealed: bytes, aad: bytes = b"") -> bytes:
        """Decrypt and verify one message, advancing the sequence number."""
        if self._key is None:
            raise MatchedDataError("context already wiped")
        if self.seq >= (1 << (8 * self.suite.nonce_size)) - 1:
            raise MatchedDataError("message limit reached")

        aead = self.suite.aead(bytes(self._key))
        try:
            plaintext = aead.decrypt(self.compute_nonce(self.seq), bytes(sealed), aad)
        except InvalidTag:
            raise AuthenticationFailure("authentication failed") from None

        self.seq += 1
        return plaintext

    def wipe(self) -> None:
        if self._key is not None:
            _wipe(self._key)
            _wipe(self._base_nonce)
            self._key = None
            self._base_nonce = None

    def __enter__(self) -> DecryptionContext:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.wipe()


def compute_nonce(base_nonce: bytes, seq: int) -> bytes:
    """XOR the big-endian sequence number into the base nonce."""
    seq_bytes = seq.to_bytes(len(base_nonce), "big")
    return bytes(a ^ b for a, b in zip(base_nonce, seq_bytes))


def key_schedule(suite: Suite, shared_secret: bytes, info: bytes = b"") -> DecryptionContext:
    """Base mode key schedule (empty PSK)."""
    sid = suite.hpke_suite_id
    psk_id_hash = labeled_extract(suite, sid, b"", b"psk_id_hash", b"")
    info_hash = labeled_extract(suite, sid, b"", b"info_hash", info)
    context = bytes([MODE_BASE]) + psk_id_hash + info_hash

    secret = bytearray(labeled_extract(suite, sid, bytes(shared_secret), b"secret", b""))
    try:
        key = bytearray(labeled_expand(suite, sid, secret, b"key", context, suite.key_size))
        base_nonce = bytearray(
            labeled_expand(suite, sid, secret, b"base_nonce", context, suite.nonce_size)
        )
    finally:
        _wipe(secret)
    return DecryptionContext(suite, key, base_nonce)


# ---------------------------------------------------------------------------
# Decryption
# ---------------------------------------------------------------------------

def open_envelope(private_key: bytes | x25519.X25519PrivateKey, envelope: Envelope) -> bytes:
    """Decrypt a parsed envelope with the recipient private key."""
    if isinstance(private_key, (bytes, bytearray)):
        private_key = load_private_key(private_key)

    suite = envelope.suite
    shared_secret = decapsulate(suite, private_key, envelope.encapped_key)
    try:
        context = key_schedule(suite, shared_secret)
    finally:
        _wipe(shared_secret)

    with context:
        plaintext = context.open(envelope.sealed)

    logger.debug("opened v%d envelope", suite.version)
    return plaintext


def decrypt(private_key: bytes, blob: bytes) -> bytes:
    """Load key, parse and open a raw envelope blob."""
    return open_envelope(load_private_key(private_key), parse_envelope(blob))

# end of module

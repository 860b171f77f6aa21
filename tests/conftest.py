"""
Shared fixtures: the known-answer vector and an HPKE sender used to build
envelopes for the receiver under test.
"""

import base64
import struct

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import x25519

import matched_data

VECTOR_PRIVATE_KEY = "uBS5eBttHrqkdY41kbZPdvYnNz8Vj0TvKIUpjB1y/GA="
VECTOR_PUBLIC_KEY = "Ycig/Zr/pZmklmFUN99nr+taURlYItL91g+NcHGYpB8="
VECTOR_MATCHED_DATA = (
    "AzTY6FHajXYXuDMUte82wrd+1n5CEHPoydYiyd3FMg5IEQAAAAAAAAA0lOhGXBclw8pWU5jbbYuepSIJN5JohTtZekLliJBlVWk="
)
VECTOR_PLAINTEXT = b"test matched data"

# Same key, version byte 0x02
V2_MATCHED_DATA = (
    "Ah0Ax4UEtSQg/bVSJHcgIwbLoNNKGbcwpL2BdCPJEYx1EQAAAAAAAAAsrRpY63jVlKash1iJ2bYh6+TQtedI380nnmZAWYgZMIU="
)


def seal(public_key: bytes, plaintext: bytes, version: int = 0x03) -> bytes:
    """HPKE base mode SetupS + Seal, serialized as a matched data envelope."""
    suite = matched_data.get_suite(version)
    recipient = x25519.X25519PublicKey.from_public_bytes(public_key)

    ephemeral = x25519.X25519PrivateKey.generate()
    enc = ephemeral.public_key().public_bytes(
        serialization.Encoding.Raw,
        serialization.PublicFormat.Raw,
    )
    dh = ephemeral.exchange(recipient)
    shared_secret = matched_data.extract_and_expand(suite, dh, enc + public_key)

    with matched_data.key_schedule(suite, shared_secret) as ctx:
        aead = suite.aead(bytes(ctx._key))
        sealed = aead.encrypt(ctx.compute_nonce(0), plaintext, b"")

    return bytes([version]) + enc + struct.pack("<Q", len(plaintext)) + sealed


@pytest.fixture
def vector_private_key() -> bytes:
    return base64.b64decode(VECTOR_PRIVATE_KEY)


@pytest.fixture
def vector_blob() -> bytes:
    return base64.b64decode(VECTOR_MATCHED_DATA)


@pytest.fixture
def key_pair() -> matched_data.KeyPair:
    return matched_data.generate_key_pair()

"""Key pair generation and private key loading."""

import base64

import pytest

import matched_data
from matched_data import InvalidPrivateKey, KeyPair

from conftest import VECTOR_PUBLIC_KEY


class TestGenerate:

    def test_sizes(self, key_pair):
        assert len(key_pair.private_key) == 32
        assert len(key_pair.public_key) == 32

    def test_public_key_matches_private(self, key_pair):
        assert matched_data.public_key_for(key_pair.private_key) == key_pair.public_key

    def test_pairs_are_distinct(self):
        a = matched_data.generate_key_pair()
        b = matched_data.generate_key_pair()
        assert a.private_key != b.private_key
        assert a.public_key != b.public_key

    def test_repr_hides_private_key(self, key_pair):
        text = repr(key_pair)
        assert key_pair.private_key.hex() not in text
        assert repr(key_pair.private_key) not in text
        assert "public_key" in text

    def test_to_dict(self):
        pair = KeyPair(private_key=b"\x01" * 32, public_key=b"\x02" * 32)
        assert pair.to_dict() == {
            "private_key": base64.b64encode(b"\x01" * 32).decode(),
            "public_key": base64.b64encode(b"\x02" * 32).decode(),
        }


class TestLoad:

    def test_vector_public_key(self, vector_private_key):
        public_key = matched_data.public_key_for(vector_private_key)
        assert base64.b64encode(public_key).decode() == VECTOR_PUBLIC_KEY

    @pytest.mark.parametrize("size", [0, 16, 31, 33, 64])
    def test_wrong_length(self, size):
        with pytest.raises(InvalidPrivateKey):
            matched_data.load_private_key(b"\x07" * size)

    def test_bytearray_accepted(self, vector_private_key):
        key = matched_data.load_private_key(bytearray(vector_private_key))
        assert matched_data.public_key_for(key) == matched_data.public_key_for(vector_private_key)

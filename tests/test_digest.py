"""
Unit tests for the incremental digest engine.

Checks SHA-256 output against published vectors and hashlib, and covers the
update/digest/reset/clone lifecycle.
"""

import hashlib
import unittest
from unittest.mock import Mock

import pytest
from cryptography.exceptions import AlreadyFinalized

from sigv4_lib.digest import DigestState, get_digest, is_equal
from sigv4_lib.errors import (
    InvalidArgumentError,
    NoSuchAlgorithmError,
    NotCloneableError,
    ShortBufferError,
)

EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
ABC_SHA256 = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"


class CountingBytes(bytes):
    """bytes that counts indexed reads."""

    def __new__(cls, data):
        obj = super().__new__(cls, data)
        obj.reads = 0
        return obj

    def __getitem__(self, index):
        self.reads += 1
        return super().__getitem__(index)


class TestMessageDigest(unittest.TestCase):
    """Test the digest lifecycle."""

    def setUp(self):
        self.md = get_digest("SHA-256")

    def test_published_vectors(self):
        """Test SHA-256 of the empty string and "abc"."""
        self.assertEqual(self.md.digest().hex(), EMPTY_SHA256)
        self.assertEqual(self.md.digest(b"abc").hex(), ABC_SHA256)

    def test_properties(self):
        """Test algorithm name, output length and block length."""
        self.assertEqual(self.md.algorithm, "SHA-256")
        self.assertEqual(self.md.digest_length, 32)
        self.assertEqual(self.md.block_length, 64)

    def test_incremental_update_matches_one_shot(self):
        """Test that chunked updates equal hashing the concatenation."""
        data = bytes(range(256)) * 5
        for start in range(0, len(data), 97):
            self.md.update(data[start : start + 97])

        self.assertEqual(self.md.digest(), hashlib.sha256(data).digest())

    def test_update_window(self):
        """Test update with offset and length."""
        self.md.update(b"xxabcxx", 2, 3)
        self.assertEqual(self.md.digest().hex(), ABC_SHA256)

    def test_update_byte(self):
        """Test feeding single bytes."""
        for value in b"abc":
            self.md.update_byte(value)
        self.assertEqual(self.md.digest().hex(), ABC_SHA256)

        with self.assertRaises(InvalidArgumentError):
            self.md.update_byte(256)

    def test_update_bad_arguments(self):
        """Test that out-of-bounds windows are rejected."""
        with self.assertRaises(InvalidArgumentError):
            self.md.update(b"abc", -1, 1)
        with self.assertRaises(InvalidArgumentError):
            self.md.update(b"abc", 0, -1)
        with self.assertRaises(InvalidArgumentError):
            self.md.update(b"abc", 2, 2)
        with self.assertRaises(InvalidArgumentError):
            self.md.update(None)

        # Nothing was absorbed by the failed calls
        self.assertEqual(self.md.state, DigestState.INITIAL)
        self.assertEqual(self.md.digest().hex(), EMPTY_SHA256)

    def test_digest_resets_state(self):
        """Test INITIAL -> IN_PROGRESS -> INITIAL."""
        self.assertEqual(self.md.state, DigestState.INITIAL)
        self.md.update(b"abc")
        self.assertEqual(self.md.state, DigestState.IN_PROGRESS)

        self.assertEqual(self.md.digest().hex(), ABC_SHA256)
        self.assertEqual(self.md.state, DigestState.INITIAL)
        self.assertEqual(self.md.digest().hex(), EMPTY_SHA256)

    def test_reset_discards_input(self):
        """Test that reset drops unfinalized data."""
        self.md.update(b"garbage")
        self.md.reset()
        self.md.update(b"abc")
        self.assertEqual(self.md.digest().hex(), ABC_SHA256)

    def test_digest_into(self):
        """Test finalizing into a caller buffer at an offset."""
        buf = bytearray(40)
        self.md.update(b"abc")

        written = self.md.digest_into(buf, 4, 32)

        self.assertEqual(written, 32)
        self.assertEqual(bytes(buf[4:36]).hex(), ABC_SHA256)
        self.assertEqual(bytes(buf[:4]), b"\x00" * 4)
        self.assertEqual(self.md.state, DigestState.INITIAL)

    def test_digest_into_short_buffer(self):
        """Test that a length below the digest size is rejected."""
        with self.assertRaises(ShortBufferError):
            self.md.digest_into(bytearray(32), 0, 31)

        with self.assertRaises(InvalidArgumentError):
            self.md.digest_into(bytearray(32), 4, 32)

    def test_clone_is_independent(self):
        """Test forking an in-flight digest."""
        self.md.update(b"chapter 1|")
        fork = self.md.clone()

        self.md.update(b"chapter 2")
        fork.update(b"other ending")

        self.assertEqual(self.md.digest(), hashlib.sha256(b"chapter 1|chapter 2").digest())
        self.assertEqual(fork.digest(), hashlib.sha256(b"chapter 1|other ending").digest())

    def test_clone_keeps_state(self):
        """Test that the clone reports the same lifecycle state."""
        self.md.update(b"a")
        self.assertEqual(self.md.clone().state, DigestState.IN_PROGRESS)

    def test_clone_not_supported(self):
        """Test that an uncopyable context raises NotCloneableError."""
        self.md._ctx = Mock(copy=Mock(side_effect=AlreadyFinalized("Context was already finalized.")))

        with self.assertRaises(NotCloneableError):
            self.md.clone()

    def test_str_reports_state(self):
        """Test the string form."""
        self.assertIn("<initialized>", str(self.md))
        self.md.update(b"a")
        self.assertIn("<in progress>", str(self.md))


class TestRegistry(unittest.TestCase):
    """Test algorithm lookup."""

    def test_unknown_algorithm(self):
        """Test that unknown names are rejected."""
        with self.assertRaises(NoSuchAlgorithmError):
            get_digest("MD5")

    def test_unknown_algorithm_is_value_error(self):
        with pytest.raises(ValueError):
            get_digest("SHA-1")

    def test_new_instance_each_call(self):
        """Test that lookups never share state."""
        a = get_digest("SHA-256")
        b = get_digest("SHA-256")
        a.update(b"abc")
        self.assertEqual(b.digest().hex(), EMPTY_SHA256)


class TestIsEqual(unittest.TestCase):
    """Test constant-time comparison."""

    def test_equal(self):
        data = hashlib.sha256(b"abc").digest()
        self.assertTrue(is_equal(data, data))
        self.assertTrue(is_equal(data, bytes(data)))
        self.assertTrue(is_equal(b"", b""))

    def test_single_bit_difference(self):
        """Test that flipping any single bit is detected."""
        data = hashlib.sha256(b"abc").digest()
        for position in range(len(data)):
            for bit in range(8):
                other = bytearray(data)
                other[position] ^= 1 << bit
                self.assertFalse(is_equal(data, bytes(other)))

    def test_length_mismatch(self):
        self.assertFalse(is_equal(b"abc", b"abcd"))

    def test_visits_every_byte(self):
        """Test that the number of compared bytes does not depend on where they differ."""
        reference = bytes(32)

        early = CountingBytes(b"\x01" + bytes(31))
        late = CountingBytes(bytes(31) + b"\x01")
        same = CountingBytes(bytes(32))

        self.assertFalse(is_equal(early, reference))
        self.assertFalse(is_equal(late, reference))
        self.assertTrue(is_equal(same, reference))

        self.assertEqual(early.reads, 32)
        self.assertEqual(late.reads, 32)
        self.assertEqual(same.reads, 32)


if __name__ == "__main__":
    unittest.main()

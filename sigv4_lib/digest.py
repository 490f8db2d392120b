"""
Incremental message digest engine.

Wraps a ``cryptography`` hash context behind a resumable update/digest/reset
contract. A finalized context is replaced by a fresh one, so a
``MessageDigest`` can be reused for any number of messages.

Usage:
    md = get_digest("SHA-256")
    md.update(b"chapter 1")
    checkpoint = md.clone()
    md.update(b"chapter 2")
    full = md.digest()
    partial = checkpoint.digest()
"""

from enum import Enum
from typing import Optional, Union

from cryptography.exceptions import AlreadyFinalized
from cryptography.hazmat.primitives import hashes

from sigv4_lib.errors import (
    InvalidArgumentError,
    NoSuchAlgorithmError,
    NotCloneableError,
    ShortBufferError,
)

BytesLike = Union[bytes, bytearray, memoryview]


class DigestState(Enum):
    """Lifecycle of a digest between two finalizations."""

    INITIAL = "initialized"
    IN_PROGRESS = "in progress"


def check_bounds(data: BytesLike, offset: int, length: Optional[int]) -> int:
    """
    Validate an (offset, length) window over ``data``.

    Returns:
        The effective length (the rest of the buffer when ``length`` is None)

    Raises:
        InvalidArgumentError: If the window falls outside the buffer
    """
    if length is None:
        length = len(data) - offset
    if offset < 0 or length < 0 or length > len(data) - offset:
        raise InvalidArgumentError("Bad arguments")
    return length


class MessageDigest:
    """
    Fixed-output-length one-way hash with incremental update.

    Not safe for concurrent use; use ``clone()`` to fork an in-flight
    computation instead of sharing one instance.
    """

    def __init__(self, algorithm: str, hash_algorithm: hashes.HashAlgorithm):
        self._algorithm = algorithm
        self._hash_algorithm = hash_algorithm
        self._ctx = hashes.Hash(hash_algorithm)
        self._state = DigestState.INITIAL

    @property
    def algorithm(self) -> str:
        return self._algorithm

    @property
    def digest_length(self) -> int:
        return self._hash_algorithm.digest_size

    @property
    def block_length(self) -> int:
        """Internal compression block size, in bytes."""
        return self._hash_algorithm.block_size

    @property
    def state(self) -> DigestState:
        return self._state

    def update_byte(self, value: int) -> None:
        """Feed a single byte (0-255) into the digest."""
        if not 0 <= value <= 0xFF:
            raise InvalidArgumentError(f"Not a byte value: {value}")
        self._ctx.update(bytes((value,)))
        self._state = DigestState.IN_PROGRESS

    def update(self, data: Optional[BytesLike], offset: int = 0, length: Optional[int] = None) -> None:
        """
        Feed ``length`` bytes of ``data`` starting at ``offset``.

        Args:
            data: Input buffer
            offset: Start of the window in ``data``
            length: Number of bytes to use (default: rest of the buffer)

        Raises:
            InvalidArgumentError: If data is None or the window is out of bounds
        """
        if data is None:
            raise InvalidArgumentError("No input buffer given")
        length = check_bounds(data, offset, length)
        self._ctx.update(memoryview(data)[offset : offset + length])
        self._state = DigestState.IN_PROGRESS

    def digest(self, data: Optional[BytesLike] = None) -> bytes:
        """
        Finalize the computation and return the hash.

        When ``data`` is given it is fed in first. The engine is reset to the
        initial state afterwards.
        """
        if data is not None:
            self.update(data)
        result = self._ctx.finalize()
        self._ctx = hashes.Hash(self._hash_algorithm)
        self._state = DigestState.INITIAL
        return result

    def digest_into(self, buf: Union[bytearray, memoryview], offset: int, length: int) -> int:
        """
        Finalize into ``buf[offset:offset + length]``.

        Returns:
            Number of bytes written (always the digest length)

        Raises:
            InvalidArgumentError: If the window does not fit in ``buf``
            ShortBufferError: If ``length`` is smaller than the digest length
        """
        if buf is None:
            raise InvalidArgumentError("No output buffer given")
        if offset < 0 or length < 0 or len(buf) - offset < length:
            raise InvalidArgumentError("Output buffer too small for specified offset and length")
        if length < self.digest_length:
            raise ShortBufferError("Partial digests not returned")
        result = self.digest()
        buf[offset : offset + len(result)] = result
        return len(result)

    def reset(self) -> None:
        """Discard any unfinalized input."""
        self._ctx = hashes.Hash(self._hash_algorithm)
        self._state = DigestState.INITIAL

    def clone(self) -> "MessageDigest":
        """
        Return an independent copy of the in-flight computation.

        Raises:
            NotCloneableError: If the underlying context cannot be copied
        """
        try:
            ctx = self._ctx.copy()
        except AlreadyFinalized as e:
            raise NotCloneableError(f"{self._algorithm} state cannot be cloned") from e
        that = MessageDigest(self._algorithm, self._hash_algorithm)
        that._ctx = ctx
        that._state = self._state
        return that

    def __str__(self) -> str:
        return f"{self._algorithm} Message Digest, <{self._state.value}>"


def is_equal(digest_a: BytesLike, digest_b: BytesLike) -> bool:
    """
    Compare two digests in constant time.

    Every byte is visited regardless of where the first difference is.
    """
    if len(digest_a) != len(digest_b):
        return False

    result = 0
    for i in range(len(digest_a)):
        result |= digest_a[i] ^ digest_b[i]
    return result == 0


# Map algorithm names to cryptography hash algorithm classes
_DIGEST_ALGORITHMS = {
    "SHA-256": hashes.SHA256,
}


def get_digest(algorithm: str) -> MessageDigest:
    """
    Create a new digest engine for ``algorithm``.

    Raises:
        NoSuchAlgorithmError: If the algorithm is not registered
    """
    if algorithm not in _DIGEST_ALGORITHMS:
        raise NoSuchAlgorithmError(f"{algorithm} not found")
    return MessageDigest(algorithm, _DIGEST_ALGORITHMS[algorithm]())

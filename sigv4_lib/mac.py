"""
HMAC (RFC 2104) built on the incremental digest engine.

``HmacCore`` holds the keyed state: the inner/outer pads and one digest
engine that is reused for both passes. ``Mac`` is the public facade that
tracks initialization and validates arguments.
"""

import logging
from typing import Any, Optional, Union

from sigv4_lib.digest import BytesLike, MessageDigest, check_bounds, get_digest
from sigv4_lib.errors import (
    IllegalStateError,
    InvalidAlgorithmParameterError,
    InvalidArgumentError,
    InvalidKeyError,
    NoSuchAlgorithmError,
    ShortBufferError,
)

logger = logging.getLogger(__name__)

IPAD = 0x36
OPAD = 0x5C


def wipe(buf: bytearray) -> None:
    """Overwrite a scratch buffer with zeros."""
    for i in range(len(buf)):
        buf[i] = 0


class HmacCore:
    """
    Keyed HMAC state over a ``MessageDigest``.

    The inner digest is primed with the inner pad lazily, on the first
    update after ``init``/``reset``; ``pending_prime`` records whether that
    still has to happen.
    """

    def __init__(self, md: MessageDigest, block_length: int):
        self._md = md
        self._block_length = block_length
        self._k_ipad = bytearray(block_length)
        self._k_opad = bytearray(block_length)
        self.pending_prime = True

    @property
    def mac_length(self) -> int:
        return self._md.digest_length

    @property
    def block_length(self) -> int:
        return self._block_length

    def init(self, key: Any, params: Any = None) -> None:
        """
        Derive the pads from ``key`` and reset.

        Keys longer than the block length are hashed first. The working copy
        of the key is zeroed before returning.

        Raises:
            InvalidAlgorithmParameterError: If params is not None
            InvalidKeyError: If the key is missing or not bytes-like
        """
        if params is not None:
            raise InvalidAlgorithmParameterError("HMAC does not use parameters")
        if key is None:
            raise InvalidKeyError("Missing key data")
        if not isinstance(key, (bytes, bytearray, memoryview)):
            raise InvalidKeyError("Secret key expected")

        # drop any message in flight under the previous key
        self._md.reset()
        self.pending_prime = True

        secret = bytearray(key)
        if len(secret) > self._block_length:
            compressed = bytearray(self._md.digest(secret))
            wipe(secret)
            secret = compressed

        for i in range(self._block_length):
            si = secret[i] if i < len(secret) else 0
            self._k_ipad[i] = si ^ IPAD
            self._k_opad[i] = si ^ OPAD

        wipe(secret)
        del secret

        self.reset()

    def _prime(self) -> None:
        if self.pending_prime:
            self._md.update(self._k_ipad)
            self.pending_prime = False

    def update_byte(self, value: int) -> None:
        self._prime()
        self._md.update_byte(value)

    def update(self, data: BytesLike, offset: int, length: int) -> None:
        self._prime()
        self._md.update(data, offset, length)

    def do_final(self) -> bytes:
        """Finish both passes and leave the core ready for a new message."""
        if self.pending_prime:
            # HMAC of the empty message
            self._md.update(self._k_ipad)
        else:
            self.pending_prime = True

        inner = self._md.digest()
        self._md.update(self._k_opad)
        self._md.update(inner)
        return self._md.digest()

    def reset(self) -> None:
        if not self.pending_prime:
            self._md.reset()
            self.pending_prime = True

    def clone(self) -> "HmacCore":
        that = type(self).__new__(type(self))
        that._md = self._md.clone()
        that._block_length = self._block_length
        that._k_ipad = bytearray(self._k_ipad)
        that._k_opad = bytearray(self._k_opad)
        that.pending_prime = self.pending_prime
        return that


class HmacSHA256(HmacCore):
    """HMAC over SHA-256 with a 64 byte block."""

    def __init__(self):
        super().__init__(get_digest("SHA-256"), 64)


class Mac:
    """
    Message authentication code engine.

    Usage:
        mac = get_mac("HmacSHA256")
        mac.init(b"key")
        mac.update(b"part one")
        mac.update(b"part two")
        tag = mac.do_final()
    """

    def __init__(self, spi: HmacCore, algorithm: str):
        self._spi = spi
        self._algorithm = algorithm
        self._initialized = False

    @property
    def algorithm(self) -> str:
        return self._algorithm

    @property
    def mac_length(self) -> int:
        return self._spi.mac_length

    def init(self, key: Any, params: Any = None) -> None:
        """Initialize with a secret key. See ``HmacCore.init``."""
        self._spi.init(key, params)
        self._initialized = True

    def _check_initialized(self) -> None:
        if not self._initialized:
            raise IllegalStateError("MAC not initialized")

    def update_byte(self, value: int) -> None:
        self._check_initialized()
        self._spi.update_byte(value)

    def update(self, data: Optional[BytesLike], offset: int = 0, length: Optional[int] = None) -> None:
        """
        Process ``length`` bytes of ``data`` from ``offset``. ``None`` is ignored.

        Raises:
            IllegalStateError: If the MAC is not initialized
            InvalidArgumentError: If the window is out of bounds
        """
        self._check_initialized()
        if data is None:
            return
        length = check_bounds(data, offset, length)
        self._spi.update(data, offset, length)

    def do_final(self, data: Optional[BytesLike] = None) -> bytes:
        """
        Finish the MAC computation and reset for the same key.

        When ``data`` is given it is processed first.
        """
        self._check_initialized()
        if data is not None:
            self.update(data)
        result = self._spi.do_final()
        self._spi.reset()
        return result

    def do_final_into(self, output: Union[bytearray, memoryview], offset: int = 0) -> None:
        """
        Finish into ``output`` starting at ``offset``.

        Raises:
            InvalidArgumentError: If ``offset`` is negative
            ShortBufferError: If ``output`` cannot hold the MAC
        """
        self._check_initialized()
        if offset < 0:
            raise InvalidArgumentError("Bad arguments")
        mac_length = self.mac_length
        if output is None or len(output) - offset < mac_length:
            raise ShortBufferError("Cannot store MAC in output buffer")
        output[offset : offset + mac_length] = self.do_final()

    def reset(self) -> None:
        self._spi.reset()

    def clone(self) -> "Mac":
        that = Mac(self._spi.clone(), self._algorithm)
        that._initialized = self._initialized
        return that


_MAC_ALGORITHMS = {
    "HmacSHA256": HmacSHA256,
}


def get_mac(algorithm: str) -> Mac:
    """
    Create a new, uninitialized MAC engine for ``algorithm``.

    Raises:
        NoSuchAlgorithmError: If the algorithm is not registered
    """
    if algorithm not in _MAC_ALGORITHMS:
        raise NoSuchAlgorithmError(f"Algorithm {algorithm} not available")
    logger.debug("Creating %s engine", algorithm)
    return Mac(_MAC_ALGORITHMS[algorithm](), algorithm)

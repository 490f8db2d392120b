"""
Exception types raised by the digest/MAC engines and the SigV4 signer.

Every error shares the ``Sigv4Error`` base and also subclasses the closest
built-in exception, so code that catches ``ValueError`` keeps working.
"""


class Sigv4Error(Exception):
    """Base class for all errors raised by this package."""


class InvalidArgumentError(Sigv4Error, ValueError):
    """Bad buffer, offset or length passed to an engine."""


class InvalidKeyError(Sigv4Error, ValueError):
    """Key material is absent or of the wrong type."""


class InvalidAlgorithmParameterError(Sigv4Error, ValueError):
    """Parameters were given to an algorithm that accepts none."""


class NoSuchAlgorithmError(Sigv4Error, ValueError):
    """The requested algorithm name is not registered."""


class ShortBufferError(Sigv4Error, ValueError):
    """Output buffer is smaller than the digest or MAC length."""


class IllegalStateError(Sigv4Error, RuntimeError):
    """Operation invoked on an engine that is not initialized."""


class NotCloneableError(Sigv4Error, TypeError):
    """The engine state cannot be duplicated safely."""


class InvalidCredentialsError(Sigv4Error, ValueError):
    """Access key id or secret key is missing."""


class EndpointParseError(Sigv4Error, ValueError):
    """Service name cannot be derived from the endpoint host."""


class SigningIOError(Sigv4Error, OSError):
    """The request payload could not be read and rewound."""

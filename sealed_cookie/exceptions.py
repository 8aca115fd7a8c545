"""Sealed Cookie exceptions."""


class CookieStorageError(Exception):
    """Base class for every error raised by sealed_cookie."""


class ConfigurationError(CookieStorageError, ValueError):
    """An option passed to the cookie storage is invalid."""


class EnvironmentMismatchError(CookieStorageError):
    """The request does not satisfy the secure or SSL-binding requirements."""


class IntegrityFailure(CookieStorageError):
    """A cookie is malformed, expired or has been tampered with.

    Only raised inside the verification path; ``CookieStorage.read()``
    converts it into an absent result.
    """


class SerializationError(CookieStorageError):
    """A value could not be serialized or deserialized."""


class CompressionError(CookieStorageError):
    """A cookie value could not be compressed or decompressed."""


class AdapterError(CookieStorageError):
    """The encryption adapter is misconfigured or failed to decrypt."""

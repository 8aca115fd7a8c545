"""Sealed Cookie — Tamper-evident credential storage inside an HTTP cookie.

Security Note (Threat Model):
    The cookie content is visible to the client unless an encryption adapter
    is configured, and is always tamper evident. Anyone holding the server
    key can forge cookies; keep it out of logs and source control.
"""

from .version import __version__
from .adapters import EncryptionAdapter, BlockCipherAdapter, PassphraseAdapter
from .compression import Compressor
from .config import CookieStorageConfig, generate_server_key
from .context import RequestContext, MemoryTransport, ResponseTransport
from .exceptions import (
    CookieStorageError,
    ConfigurationError,
    EnvironmentMismatchError,
    IntegrityFailure,
    SerializationError,
    CompressionError,
    AdapterError,
)
from .record import CredentialRecord
from .serializers import Serializer, JSONSerializer
from .storage import CookieStorage

__all__ = [
    "__version__",
    "CookieStorage",
    "CookieStorageConfig",
    "generate_server_key",
    "CredentialRecord",
    "RequestContext",
    "MemoryTransport",
    "ResponseTransport",
    "EncryptionAdapter",
    "BlockCipherAdapter",
    "PassphraseAdapter",
    "Serializer",
    "JSONSerializer",
    "Compressor",
    "CookieStorageError",
    "ConfigurationError",
    "EnvironmentMismatchError",
    "IntegrityFailure",
    "SerializationError",
    "CompressionError",
    "AdapterError",
]

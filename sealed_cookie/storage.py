"""
CookieStorage — Tamper-evident credential storage inside an HTTP cookie.

Provides the public API:
- ``write(context, payload)`` — seal, optionally encrypt and emit the cookie
- ``read(context, default)`` — verify the cookie and return its payload
- ``clear(context)`` / ``is_empty(context)`` — remove or probe the cookie

A cookie is verified by rebuilding it: the payload is recovered, a new record
is created from it with the cookie's own identifier and expiration, and the
two records must be equal field for field. This checks the seal and the
stored data at once.

Security Note:
    Never log the server key, derived keys or payloads. Only log cookie
    names, identifiers and rejection reasons.
"""
import time
import logging
import threading
from typing import Any, Optional

from .adapters import BlockCipherAdapter, EncryptionAdapter, PassphraseAdapter
from .compression import Compressor
from .config import CookieStorageConfig
from .context import RequestContext
from .crypto import (
    create_seal,
    derive_cookie_key,
    derive_vector,
    new_identifier,
)
from .exceptions import (
    AdapterError,
    CompressionError,
    ConfigurationError,
    EnvironmentMismatchError,
    IntegrityFailure,
    SerializationError,
)
from .record import CredentialRecord
from .serializers import JSONSerializer, Serializer

logger = logging.getLogger("sealed_cookie")


class CookieStorage:
    """Credential storage backed by a sealed cookie.

    Args:
        server_key: Long lived secret used to derive every cookie key.
        serializer: Serializer for payloads and records (JSON by default).
        compressor: Codec for the cookie value (zlib by default).
        config: Already validated configuration, used instead of
            ``server_key`` and ``options``.
        **options: Any ``CookieStorageConfig`` field; unknown keys are ignored.

    Raises:
        ConfigurationError: If any option is invalid.
    """

    def __init__(
        self,
        server_key: Optional[str] = None,
        serializer: Optional[Serializer] = None,
        compressor: Optional[Compressor] = None,
        config: Optional[CookieStorageConfig] = None,
        **options: Any,
    ):
        if config is None:
            config = CookieStorageConfig.create(server_key, **options)
        elif not isinstance(config, CookieStorageConfig):
            raise ConfigurationError(
                f"config must be a CookieStorageConfig, got {type(config).__name__}"
            )
        elif server_key is not None or options:
            raise ConfigurationError(
                "Pass either a config or a server key with options, not both"
            )
        self._config = config
        self._serializer = serializer or JSONSerializer()
        self._compressor = compressor or Compressor()
        adapter = config.encrypt_adapter
        # storages sharing a config share its adapter, and so its lock
        self._lock = adapter.lock if adapter is not None else threading.RLock()

    @classmethod
    def from_config(
        cls,
        config: CookieStorageConfig,
        serializer: Optional[Serializer] = None,
        compressor: Optional[Compressor] = None,
    ) -> "CookieStorage":
        """Build a storage from an already validated configuration."""
        return cls(serializer=serializer, compressor=compressor, config=config)

    def __repr__(self) -> str:
        return (
            f'<CookieStorage name={self.name!r} lifetime={self.lifetime} '
            f'adapter={self.encrypt_adapter!r}>'
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> CookieStorageConfig:
        return self._config

    @property
    def name(self) -> str:
        return self._config.name

    @property
    def domain(self) -> Optional[str]:
        return self._config.domain

    @property
    def path(self) -> Optional[str]:
        return self._config.path

    @property
    def lifetime(self) -> Optional[int]:
        return self._config.lifetime

    @property
    def is_secure(self) -> bool:
        return self._config.is_secure

    @property
    def is_linked_with_ssl(self) -> bool:
        return self._config.is_linked_with_ssl

    @property
    def hash_algorithm(self) -> str:
        return self._config.hash_algorithm

    @property
    def encrypt_adapter(self) -> Optional[EncryptionAdapter]:
        return self._config.encrypt_adapter

    def check_configuration(self, context: RequestContext) -> None:
        """Make sure the request satisfies the secure and SSL settings.

        Raises:
            EnvironmentMismatchError: ``is_secure`` over plain HTTP, or
                ``is_linked_with_ssl`` without an SSL session id.
        """
        if self.is_secure and not context.is_secure:
            raise EnvironmentMismatchError(
                "`is_secure` set to true but protocol is not HTTPS"
            )
        if self.is_linked_with_ssl and not context.ssl_session_id:
            raise EnvironmentMismatchError(
                "`is_linked_with_ssl` set to true but no ssl session id found"
            )

    # ------------------------------------------------------------------
    # Key material
    # ------------------------------------------------------------------

    def create_cookie_key(self, identifier: str, expiration: Optional[int]) -> str:
        return derive_cookie_key(
            self._config.server_key,
            self.hash_algorithm,
            identifier,
            expiration,
            self._serializer,
        )

    def bind_encrypt_adapter(self, identifier: str, expiration: Optional[int]) -> None:
        """Push the key material of one cookie into the encryption adapter.

        No-op when no adapter is configured.
        """
        adapter = self.encrypt_adapter
        if adapter is None:
            return
        cookie_key = self.create_cookie_key(identifier, expiration)
        if isinstance(adapter, BlockCipherAdapter):
            adapter.set_encryption(
                key=cookie_key,
                vector=derive_vector(cookie_key, adapter.iv_size),
            )
        elif isinstance(adapter, PassphraseAdapter):
            adapter.set_passphrase(cookie_key)

    def create_seal(
        self,
        identifier: str,
        expiration: Optional[int],
        payload: Any,
        context: RequestContext,
    ) -> str:
        ssl_session_id = context.ssl_session_id if self.is_linked_with_ssl else None
        return create_seal(
            self.create_cookie_key(identifier, expiration),
            self.hash_algorithm,
            identifier,
            expiration,
            payload,
            self._serializer,
            ssl_session_id=ssl_session_id,
        )

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def prepare_for_write(self, payload: Any) -> bytes:
        """Serialize the payload and encrypt it when an adapter is set."""
        data = self._serializer.serialize(payload)
        adapter = self.encrypt_adapter
        if adapter is not None:
            data = adapter.encrypt(data)
        return data

    def prepare_for_read(self, data: bytes) -> Any:
        """Decrypt (when an adapter is set) and deserialize stored data.

        Raises:
            AdapterError: data could not be decrypted.
            SerializationError: decrypted data is not a serialized value.
        """
        adapter = self.encrypt_adapter
        if adapter is not None:
            data = adapter.decrypt(data)
        return self._serializer.deserialize(data)

    def create_cookie(
        self,
        identifier: str,
        expiration: Optional[int],
        payload: Any,
        context: RequestContext,
    ) -> CredentialRecord:
        """Build the record for ``payload``; the adapter must already be bound."""
        return CredentialRecord(
            identifier=identifier,
            expiration=expiration,
            data=self.prepare_for_write(payload),
            seal=self.create_seal(identifier, expiration, payload, context),
        )

    def _load_record(self, raw: str) -> CredentialRecord:
        try:
            value = self._serializer.deserialize(
                self._compressor.decode_cookie_value(raw)
            )
        except (CompressionError, SerializationError) as err:
            raise IntegrityFailure(str(err)) from err
        return CredentialRecord.from_wire(value)

    def _recover(self, record: CredentialRecord, context: RequestContext) -> Any:
        if record.expiration is not None and record.expiration < time.time():
            raise IntegrityFailure(f"Cookie expired at {record.expiration}")
        try:
            payload = self.prepare_for_read(record.data)
            expected = self.create_cookie(
                record.identifier, record.expiration, payload, context
            )
        except (AdapterError, SerializationError) as err:
            raise IntegrityFailure(f"Unable to recover cookie data: {err}") from err
        if not record.matches(expected):
            raise IntegrityFailure("Cookie seal does not match its content")
        return payload

    def verify_seal(self, record: CredentialRecord, context: RequestContext) -> bool:
        """Check a record is unexpired and untouched.

        The encryption adapter must be bound to the record beforehand.
        """
        try:
            self._recover(record, context)
        except IntegrityFailure:
            return False
        return True

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_empty(self, context: RequestContext) -> bool:
        return context.get_cookie(self.name) is None

    def read(self, context: RequestContext, default: Any = None) -> Any:
        """Return the payload stored in the cookie.

        Missing, malformed, expired or tampered cookies all give ``default``.

        Args:
            context: Current request context.
            default: Value returned when there is no valid cookie.

        Raises:
            EnvironmentMismatchError: The request does not satisfy the
                secure or SSL-binding settings.
        """
        self.check_configuration(context)

        raw = context.get_cookie(self.name)
        if not raw:
            return default

        try:
            with self._lock:
                record = self._load_record(raw)
                try:
                    self.bind_encrypt_adapter(record.identifier, record.expiration)
                except (AdapterError, SerializationError) as err:
                    raise IntegrityFailure(f"Unable to derive cookie key: {err}") from err
                payload = self._recover(record, context)
        except IntegrityFailure as err:
            logger.info("Cookie %s rejected: %s", self.name, err)
            return default

        logger.debug("Cookie %s read: id=%s", self.name, record.identifier)
        return payload

    def write(self, context: RequestContext, payload: Any) -> str:
        """Seal ``payload`` into a new cookie and emit it.

        A fresh identifier is used on every call, so writing the same payload
        twice gives two different cookies.

        Args:
            context: Current request context.
            payload: Any value the serializer supports.

        Returns:
            The raw cookie value.

        Raises:
            EnvironmentMismatchError: The request does not satisfy the
                secure or SSL-binding settings.
            SerializationError: The payload can't be serialized.
            AdapterError: The encryption adapter is misconfigured.
        """
        self.check_configuration(context)

        expiration = self._config.expiration_timestamp()
        # a fresh identifier per write keeps cookie keys and vectors single use
        identifier = new_identifier()

        with self._lock:
            self.bind_encrypt_adapter(identifier, expiration)
            record = self.create_cookie(identifier, expiration, payload, context)

        raw = self._compressor.encode_cookie_value(
            self._serializer.serialize(record.to_wire())
        )

        context.cookies[self.name] = raw
        context.transport.set_cookie(
            self.name,
            raw,
            expires=expiration,
            path=self.path,
            domain=self.domain,
            secure=self.is_secure,
        )
        logger.debug(
            "Cookie %s written: id=%s expires=%s", self.name, identifier, expiration,
        )
        return raw

    def clear(self, context: RequestContext) -> None:
        """Remove the cookie from the request jar and expire it on the client."""
        context.cookies.pop(self.name, None)
        context.transport.clear_cookie(self.name, path=self.path, domain=self.domain)
        logger.debug("Cookie %s cleared", self.name)

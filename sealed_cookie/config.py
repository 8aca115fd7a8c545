"""
Cookie Storage Configuration — Validated, immutable settings.

Reads defaults from environment variables in the format:
    SEALED_COOKIE_SERVER_KEY = <secret string>
    SEALED_COOKIE_NAME = <cookie name>
    SEALED_COOKIE_LIFETIME = <minutes>
    SEALED_COOKIE_SECURE / SEALED_COOKIE_SSL_BINDING = true | false

Security Note:
    Never log the server key. It is excluded from repr().
"""
import os
import time
import secrets
import logging
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictBool,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)

from .adapters import SUPPORTED_ADAPTERS, EncryptionAdapter
from .conf import COOKIE_NAME, COOKIE_DOMAIN, COOKIE_PATH, HASH_ALGORITHM
from .crypto import supported_algorithms
from .exceptions import ConfigurationError

logger = logging.getLogger("sealed_cookie")

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off", "")


def generate_server_key() -> str:
    """Generate a random server key.

    This is a utility for operators to generate new keys.

    Returns:
        URL-safe string carrying 48 random bytes.
    """
    return secrets.token_urlsafe(48)


def _env_bool(name: str) -> bool:
    raw = (os.environ.get(name, "") or "").strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {raw!r}")


class CookieStorageConfig(BaseModel):
    """Validated cookie storage configuration."""

    server_key: StrictStr = Field(min_length=1, repr=False)
    name: StrictStr = Field(default=COOKIE_NAME, min_length=1)
    domain: Optional[StrictStr] = COOKIE_DOMAIN
    path: Optional[StrictStr] = COOKIE_PATH
    lifetime: Optional[StrictInt] = Field(default=None, ge=0)
    is_secure: StrictBool = False
    is_linked_with_ssl: StrictBool = False
    hash_algorithm: StrictStr = HASH_ALGORITHM
    encrypt_adapter: Optional[EncryptionAdapter] = None

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        arbitrary_types_allowed=True,
        hide_input_in_errors=True,
    )

    @field_validator("hash_algorithm")
    @classmethod
    def validate_hash_algorithm(cls, v: str) -> str:
        """Validate the algorithm is available on this host."""
        name = v.lower()
        if name not in supported_algorithms():
            raise ValueError(f"Algorithm `{v}` not available on system")
        return name

    @field_validator("encrypt_adapter")
    @classmethod
    def validate_adapter(
        cls, v: Optional[EncryptionAdapter]
    ) -> Optional[EncryptionAdapter]:
        """Only the block cipher and passphrase adapters are supported."""
        if v is not None and not isinstance(v, SUPPORTED_ADAPTERS):
            raise ValueError(
                "Only BlockCipherAdapter and PassphraseAdapter are supported, "
                f"got {type(v).__name__}"
            )
        return v

    @classmethod
    def create(cls, server_key: Any, **options: Any) -> "CookieStorageConfig":
        """Validate ``options`` and build a configuration.

        Unknown options are ignored.

        Raises:
            ConfigurationError: If any option is invalid.
        """
        try:
            return cls(server_key=server_key, **options)
        except ValidationError as err:
            raise ConfigurationError(str(err)) from err

    @classmethod
    def from_env(cls, **overrides: Any) -> "CookieStorageConfig":
        """Create a configuration from SEALED_COOKIE_* environment variables.

        Keyword arguments take precedence over the environment.

        Returns:
            Populated CookieStorageConfig instance.
        """
        options: dict[str, Any] = {
            "server_key": os.environ.get("SEALED_COOKIE_SERVER_KEY"),
            "is_secure": _env_bool("SEALED_COOKIE_SECURE"),
            "is_linked_with_ssl": _env_bool("SEALED_COOKIE_SSL_BINDING"),
        }
        lifetime = (os.environ.get("SEALED_COOKIE_LIFETIME", "") or "").strip()
        if lifetime:
            try:
                options["lifetime"] = int(lifetime)
            except ValueError as err:
                raise ConfigurationError(
                    f"SEALED_COOKIE_LIFETIME must be an integer, got {lifetime!r}"
                ) from err
        options.update(overrides)
        if not options.get("server_key"):
            raise ConfigurationError(
                "No server key found. Set SEALED_COOKIE_SERVER_KEY=<secret>"
            )
        config = cls.create(**options)
        logger.debug(
            "Cookie storage configured from environment: name=%s lifetime=%s "
            "secure=%s ssl_binding=%s",
            config.name, config.lifetime, config.is_secure, config.is_linked_with_ssl,
        )
        return config

    def expiration_timestamp(self, now: Optional[float] = None) -> Optional[int]:
        """Return the UNIX timestamp a cookie written now expires at.

        A lifetime of None or 0 means the record carries no expiration.
        """
        if not self.lifetime:
            return None
        if now is None:
            now = time.time()
        return int(now) + self.lifetime * 60

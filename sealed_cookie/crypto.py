"""
Sealed Cookie Crypto Core — Cookie keys, seals and deterministic vectors.

Key hierarchy:
- Cookie key: HMAC(server_key, [identifier, expiration]) — one per written cookie
- Seal: HMAC(cookie_key, [identifier, expiration, payload, ssl_session_id?])
- Cipher key / vector: HKDF(cookie_key, context) → bytes of the size the cipher needs

Security Note:
    Never log the server key, cookie keys or vectors.
    Vectors are deterministic on purpose: a cookie is verified by rebuilding
    it, so encrypting the same payload with the same key must give the same
    ciphertext. The identifier is fresh on every write, which keeps every
    (key, vector) pair single use.
"""
import hmac
import uuid
import hashlib
import logging
from typing import Any, Optional

from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives import hashes

from .conf import VECTOR_CONTEXT
from .serializers import Serializer

logger = logging.getLogger("sealed_cookie")


# ---------------------------------------------------------------------------
# Hash registry
# ---------------------------------------------------------------------------

def supported_algorithms() -> frozenset[str]:
    """Return the hash names usable for HMAC on this host.

    Variable length digests (SHAKE) are excluded, HMAC needs a fixed size.
    """
    return frozenset(
        name.lower() for name in hashlib.algorithms_available
        if not name.lower().startswith("shake")
    )


def hmac_hexdigest(algorithm: str, key: str | bytes, message: bytes) -> str:
    """Keyed hash of ``message`` returned as a hex string."""
    if isinstance(key, str):
        key = key.encode("utf-8")
    return hmac.new(key, message, digestmod=algorithm).hexdigest()


def constant_time_equals(a: str, b: str) -> bool:
    """Compare two seals without leaking timing information."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(seed: bytes, context: str, length: int = 32) -> bytes:
    """Derive ``length`` bytes from ``seed`` using HKDF-SHA256.

    Args:
        seed: Input key material (a cookie key or an adapter passphrase).
        context: Context string for domain separation.
        length: Number of bytes to derive.

    Returns:
        Derived bytes.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=None,  # Derivation must be reproducible from the seed alone
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


def derive_cookie_key(
    server_key: str,
    algorithm: str,
    identifier: str,
    expiration: Optional[int],
    serializer: Serializer,
) -> str:
    """Derive the key for one cookie instance.

    The same (identifier, expiration) always gives the same key for a given
    server key, so the read path can recompute it without storing it.
    """
    message = serializer.serialize([identifier, expiration])
    return hmac_hexdigest(algorithm, server_key, message)


def derive_vector(cookie_key: str, size: int) -> bytes:
    """Derive a deterministic initialization vector of ``size`` bytes."""
    return derive_key(cookie_key.encode("utf-8"), VECTOR_CONTEXT, size)


def new_identifier() -> str:
    """Return a fresh identifier for a cookie write."""
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Seal
# ---------------------------------------------------------------------------

def create_seal(
    cookie_key: str,
    algorithm: str,
    identifier: str,
    expiration: Optional[int],
    payload: Any,
    serializer: Serializer,
    ssl_session_id: Optional[str] = None,
) -> str:
    """Create the seal used to detect tampering.

    The seal covers the payload before encryption. When ``ssl_session_id`` is
    given the seal is bound to that SSL session, so the cookie stops
    validating once the session ends.

    Args:
        cookie_key: Key returned by :func:`derive_cookie_key`.
        algorithm: Hash algorithm name.
        identifier: Cookie identifier.
        expiration: Expiration timestamp or None.
        payload: Caller's logical payload.
        serializer: Serializer used to build the sealed message.
        ssl_session_id: Optional SSL session to bind to.

    Returns:
        Hex encoded seal.
    """
    seal_data = [identifier, expiration, payload]
    if ssl_session_id is not None:
        seal_data.append(ssl_session_id)
    return hmac_hexdigest(algorithm, cookie_key, serializer.serialize(seal_data))

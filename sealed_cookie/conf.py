"""Sealed Cookie defaults.

Every value can be overridden through a ``SEALED_COOKIE_*`` environment variable.
"""
import os

# Cookie addressing
COOKIE_NAME = os.environ.get("SEALED_COOKIE_NAME", "SW_AUTH")
COOKIE_DOMAIN = os.environ.get("SEALED_COOKIE_DOMAIN") or None
COOKIE_PATH = os.environ.get("SEALED_COOKIE_PATH") or None

HASH_ALGORITHM = os.environ.get("SEALED_COOKIE_HASH_ALGORITHM", "sha256")

# Record field names, as stored inside the cookie
IDENTIFIER = "ID"
DATA = "DATA"
EXPIRATION = "EXPIRATION"
SEAL = "SEAL"

# zlib level used for cookie values
COMPRESSION_LEVEL = 9
# Upper bound for a decompressed cookie value (browsers cap cookies at 4KB).
MAX_COOKIE_PAYLOAD = int(
    os.environ.get("SEALED_COOKIE_MAX_PAYLOAD", 64 * 1024)
)

# HKDF contexts
VECTOR_CONTEXT = "sealed-cookie-vector"
CIPHER_KEY_CONTEXT = "sealed-cookie-key"
PASSPHRASE_CONTEXT = "sealed-cookie-passphrase"

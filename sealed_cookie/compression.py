"""
Cookie value codec — zlib compression plus url-safe base64.

Compression is deterministic for a given level, so the same record always
produces the same cookie value. Padding is stripped so the value only holds
characters that are legal in a cookie without quoting.

Decoding only accepts the exact stream this host's zlib emits. Deflate
output is stable for one zlib build but not across zlib versions or
zlib-ng, so upgrading zlib, or serving one cookie from hosts with different
builds, turns every cookie issued before into an absent one. Plan such
upgrades like a server key rotation.
"""
import zlib
import base64
import binascii

from .conf import COMPRESSION_LEVEL, MAX_COOKIE_PAYLOAD
from .exceptions import CompressionError


class Compressor:
    """zlib compressor with a bounded decompression size."""

    def __init__(self, level: int = COMPRESSION_LEVEL, max_size: int = MAX_COOKIE_PAYLOAD):
        if not 0 <= level <= 9:
            raise ValueError(f"Compression level must be between 0 and 9, got {level}")
        self.level = level
        self.max_size = max_size

    def compress(self, data: bytes) -> bytes:
        return zlib.compress(data, self.level)

    def decompress(self, data: bytes) -> bytes:
        """Decompress ``data``.

        Raises:
            CompressionError: data is corrupt, truncated or inflates past max_size.
        """
        decompressor = zlib.decompressobj()
        try:
            result = decompressor.decompress(data, self.max_size)
        except zlib.error as err:
            raise CompressionError(f"Invalid compressed data: {err}") from err
        if decompressor.unconsumed_tail:
            raise CompressionError(
                f"Decompressed data exceeds {self.max_size} bytes"
            )
        if not decompressor.eof:
            raise CompressionError("Truncated compressed data")
        if decompressor.unused_data:
            raise CompressionError("Trailing data after compressed stream")
        return result

    def encode_cookie_value(self, data: bytes) -> str:
        """Compress ``data`` and return it as a cookie-safe string."""
        encoded = base64.urlsafe_b64encode(self.compress(data)).rstrip(b"=")
        return encoded.decode("ascii")

    def decode_cookie_value(self, value: str) -> bytes:
        """Reverse :meth:`encode_cookie_value`.

        Raises:
            CompressionError: value is not an encoded cookie.
        """
        try:
            encoded = value.encode("ascii")
            raw = base64.b64decode(
                encoded + b"=" * (-len(encoded) % 4), altchars=b"-_", validate=True
            )
        except (binascii.Error, UnicodeEncodeError, ValueError) as err:
            raise CompressionError(f"Invalid cookie encoding: {err}") from err
        # base64 ignores unused trailing bits; only the canonical form is valid.
        if base64.urlsafe_b64encode(raw).rstrip(b"=") != encoded:
            raise CompressionError("Non canonical cookie encoding")
        data = self.decompress(raw)
        # deflate ignores padding bits too; require the exact stream we emit.
        if self.compress(data) != raw:
            raise CompressionError("Non canonical compressed data")
        return data

"""
Encryption adapters — the two ciphers a cookie storage can use.

- ``BlockCipherAdapter``: block cipher with an explicit key and vector,
  both pushed in by the storage before every use.
- ``PassphraseAdapter``: stream cipher keyed by a passphrase; the cipher key
  and nonce are derived from the passphrase.

Both are deterministic: the same plaintext and key material always produce
the same ciphertext. Cookie verification rebuilds the ciphertext and compares
it, so a randomized cipher would never verify.

Security Note:
    Never log keys, vectors or passphrases.
"""
import threading
from abc import ABC, abstractmethod
from typing import Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .conf import CIPHER_KEY_CONTEXT, PASSPHRASE_CONTEXT
from .crypto import derive_key
from .exceptions import AdapterError


class EncryptionAdapter(ABC):
    """Symmetric cipher used to hide cookie data.

    Key material is set and then used in two separate calls, so callers
    sharing one adapter hold :attr:`lock` across both.
    """

    def __init__(self):
        self.lock = threading.RLock()

    @abstractmethod
    def encrypt(self, data: bytes) -> bytes:
        ...

    @abstractmethod
    def decrypt(self, data: bytes) -> bytes:
        ...


def _check_backend(cipher: Cipher, name: str) -> None:
    """Raise ValueError when the cryptography backend can't run ``cipher``."""
    try:
        cipher.encryptor()
    except UnsupportedAlgorithm as err:
        raise ValueError(f"Cipher {name} is not supported by this backend") from err


# ---------------------------------------------------------------------------
# Block cipher with explicit vector
# ---------------------------------------------------------------------------

_BLOCK_ALGORITHMS = {
    "aes": (algorithms.AES, 32),
}

_BLOCK_MODES = {
    "cbc": modes.CBC,
    "ctr": modes.CTR,
}


class BlockCipherAdapter(EncryptionAdapter):
    """Block cipher (AES) in CBC or CTR mode.

    The key given to :meth:`set_encryption` may be any string; it is
    stretched to the cipher key size with HKDF. The vector must be exactly
    :attr:`iv_size` bytes.
    """

    def __init__(self, algorithm: str = "aes", mode: str = "cbc"):
        super().__init__()
        algorithm = algorithm.lower()
        mode = mode.lower()
        if algorithm not in _BLOCK_ALGORITHMS:
            raise ValueError(f"Unsupported block cipher: {algorithm}")
        if mode not in _BLOCK_MODES:
            raise ValueError(f"Unsupported cipher mode: {mode}")
        self._algorithm = algorithm
        self._mode = mode
        self._key: Optional[bytes] = None
        self._vector: Optional[bytes] = None
        _, key_size = _BLOCK_ALGORITHMS[algorithm]
        _check_backend(
            self._build(bytes(key_size), bytes(self.iv_size)),
            f"{algorithm}-{mode}",
        )

    def __repr__(self) -> str:
        return f"<BlockCipherAdapter {self._algorithm}-{self._mode}>"

    @property
    def algorithm(self) -> str:
        return self._algorithm

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def iv_size(self) -> int:
        """Size in bytes of the vector required by the cipher."""
        return _BLOCK_ALGORITHMS[self._algorithm][0].block_size // 8

    def get_encryption(self) -> dict:
        """Return the cipher settings (never the key material)."""
        return {
            "algorithm": self._algorithm,
            "mode": self._mode,
            "iv_size": self.iv_size,
        }

    def set_encryption(self, key: str, vector: bytes) -> None:
        """Set key and vector for the next encrypt/decrypt calls.

        Raises:
            AdapterError: If the key is empty or the vector has the wrong size.
        """
        if not key:
            raise AdapterError("Encryption key cannot be empty")
        if len(vector) != self.iv_size:
            raise AdapterError(
                f"Vector must be {self.iv_size} bytes, got {len(vector)}"
            )
        _, key_size = _BLOCK_ALGORITHMS[self._algorithm]
        self._key = derive_key(
            key.encode("utf-8"), f"{CIPHER_KEY_CONTEXT}-{self._algorithm}", key_size
        )
        self._vector = vector

    def _build(self, key: bytes, vector: bytes) -> Cipher:
        cls, _ = _BLOCK_ALGORITHMS[self._algorithm]
        return Cipher(cls(key), _BLOCK_MODES[self._mode](vector))

    def _cipher(self) -> Cipher:
        if self._key is None or self._vector is None:
            raise AdapterError(
                "BlockCipherAdapter used before set_encryption() was called"
            )
        return self._build(self._key, self._vector)

    def encrypt(self, data: bytes) -> bytes:
        cipher = self._cipher()
        try:
            if self._mode == "cbc":
                padder = padding.PKCS7(cipher.algorithm.block_size).padder()
                data = padder.update(data) + padder.finalize()
            encryptor = cipher.encryptor()
            return encryptor.update(data) + encryptor.finalize()
        except UnsupportedAlgorithm as err:
            raise AdapterError(f"Unable to encrypt data: {err}") from err

    def decrypt(self, data: bytes) -> bytes:
        """Decrypt ``data``.

        Raises:
            AdapterError: If the ciphertext is not block aligned or the
                padding is invalid.
        """
        cipher = self._cipher()
        try:
            decryptor = cipher.decryptor()
            plain = decryptor.update(data) + decryptor.finalize()
            if self._mode == "cbc":
                unpadder = padding.PKCS7(cipher.algorithm.block_size).unpadder()
                plain = unpadder.update(plain) + unpadder.finalize()
        except (UnsupportedAlgorithm, ValueError) as err:
            raise AdapterError(f"Unable to decrypt data: {err}") from err
        return plain


# ---------------------------------------------------------------------------
# Passphrase keyed stream cipher
# ---------------------------------------------------------------------------

_NONCE_SIZE = 16
_STREAM_KEY_SIZE = 32
_STREAM_CIPHERS = ("chacha20", "aes-ctr")


class PassphraseAdapter(EncryptionAdapter):
    """Stream cipher (ChaCha20 or AES-CTR) keyed by a passphrase.

    Key and nonce are both derived from the passphrase, so a passphrase must
    never be reused for different plaintexts. The cookie storage sets a new
    passphrase for every written cookie.
    """

    def __init__(self, cipher: str = "chacha20"):
        super().__init__()
        cipher = cipher.lower()
        if cipher not in _STREAM_CIPHERS:
            raise ValueError(f"Unsupported stream cipher: {cipher}")
        self._cipher_name = cipher
        self._key: Optional[bytes] = None
        self._nonce: Optional[bytes] = None
        _check_backend(
            self._build(bytes(_STREAM_KEY_SIZE), bytes(_NONCE_SIZE)), cipher
        )

    def __repr__(self) -> str:
        return f"<PassphraseAdapter {self._cipher_name}>"

    @property
    def cipher(self) -> str:
        return self._cipher_name

    def set_passphrase(self, passphrase: str) -> None:
        """Set the passphrase used by the next encrypt/decrypt calls."""
        if not passphrase:
            raise AdapterError("Passphrase cannot be empty")
        material = derive_key(
            passphrase.encode("utf-8"),
            f"{PASSPHRASE_CONTEXT}-{self._cipher_name}",
            _STREAM_KEY_SIZE + _NONCE_SIZE,
        )
        self._key = material[:_STREAM_KEY_SIZE]
        self._nonce = material[_STREAM_KEY_SIZE:]

    def _build(self, key: bytes, nonce: bytes) -> Cipher:
        if self._cipher_name == "chacha20":
            return Cipher(algorithms.ChaCha20(key, nonce), mode=None)
        return Cipher(algorithms.AES(key), modes.CTR(nonce))

    def _cipher(self) -> Cipher:
        if self._key is None or self._nonce is None:
            raise AdapterError(
                "PassphraseAdapter used before set_passphrase() was called"
            )
        return self._build(self._key, self._nonce)

    def _apply(self, data: bytes) -> bytes:
        cipher = self._cipher()
        try:
            context = cipher.encryptor()
        except UnsupportedAlgorithm as err:
            raise AdapterError(f"Cipher {self._cipher_name} unavailable: {err}") from err
        return context.update(data) + context.finalize()

    def encrypt(self, data: bytes) -> bytes:
        return self._apply(data)

    def decrypt(self, data: bytes) -> bytes:
        # stream ciphers: decryption is the same keystream XOR
        return self._apply(data)


SUPPORTED_ADAPTERS = (BlockCipherAdapter, PassphraseAdapter)

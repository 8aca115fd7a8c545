"""
Tests for CookieStorage.

Tests cover:
- Write/read round trips, with and without encryption
- Tamper detection on the raw value and on every record field
- Expiration
- Fresh identifiers per write
- Secure and SSL-binding preconditions
- Cookie emission and clearing through the transport
- Storages sharing one configuration and its adapter
"""
import time
from concurrent.futures import ThreadPoolExecutor

import pytest
from cryptography.exceptions import UnsupportedAlgorithm
from freezegun import freeze_time

from sealed_cookie import (
    AdapterError,
    BlockCipherAdapter,
    Compressor,
    ConfigurationError,
    CookieStorage,
    CookieStorageConfig,
    CredentialRecord,
    EnvironmentMismatchError,
    JSONSerializer,
    MemoryTransport,
    PassphraseAdapter,
    RequestContext,
    SerializationError,
)
from sealed_cookie import adapters
from sealed_cookie.conf import IDENTIFIER, EXPIRATION, DATA, SEAL

SERVER_KEY = "s3cr3t"

PAYLOADS = [
    "uid:42",
    42,
    0,
    "",
    False,
    [1, 2, 3],
    {"user": {"id": 42, "roles": ["admin"], "token": b"\x01\x02"}},
]

ADAPTERS = [
    lambda: BlockCipherAdapter("aes", "cbc"),
    lambda: BlockCipherAdapter("aes", "ctr"),
    lambda: PassphraseAdapter("chacha20"),
    lambda: PassphraseAdapter("aes-ctr"),
]


def decode(raw: str) -> dict:
    return JSONSerializer().deserialize(Compressor().decode_cookie_value(raw))


def encode(value: dict) -> str:
    return Compressor().encode_cookie_value(JSONSerializer().serialize(value))


def replace_char(value: str, index: int, alphabet: str) -> str:
    current = value[index]
    replacement = alphabet[0] if current != alphabet[0] else alphabet[1]
    return value[:index] + replacement + value[index + 1:]


def fresh_context(cookies: dict, **kwargs) -> RequestContext:
    """Context for a later request carrying the given cookies."""
    return RequestContext(cookies=dict(cookies), transport=MemoryTransport(), **kwargs)


# --- Test Round Trip ---

class TestRoundTrip:
    """Tests for write followed by read."""

    @pytest.mark.parametrize("payload", PAYLOADS)
    def test_plain_roundtrip(self, storage, context, payload):
        """Test read() returns what write() stored."""
        storage.write(context, payload)
        assert storage.read(context) == payload

    @pytest.mark.parametrize("payload", PAYLOADS)
    @pytest.mark.parametrize("make_adapter", ADAPTERS)
    def test_encrypted_roundtrip(self, context, make_adapter, payload):
        """Test the round trip with every encryption adapter."""
        storage = CookieStorage(SERVER_KEY, encrypt_adapter=make_adapter())
        storage.write(context, payload)
        assert storage.read(context) == payload

    def test_tuple_comes_back_as_list(self, storage, context):
        storage.write(context, ("a", 1))
        assert storage.read(context) == ["a", 1]

    def test_next_request_reads_cookie(self, storage, context):
        """Test a new request carrying the cookie sees the payload."""
        raw = storage.write(context, {"uid": 42})
        later = fresh_context({storage.name: raw})
        assert storage.read(later) == {"uid": 42}

    def test_other_storage_instance_reads_cookie(self, context):
        """Test nothing but the server key is needed to read a cookie."""
        options = {"lifetime": 10}
        raw = CookieStorage(
            SERVER_KEY, encrypt_adapter=BlockCipherAdapter(), **options
        ).write(context, "uid:42")
        reader = CookieStorage(
            SERVER_KEY, encrypt_adapter=BlockCipherAdapter(), **options
        )
        assert reader.read(fresh_context({reader.name: raw})) == "uid:42"

    def test_from_config(self, context):
        config = CookieStorageConfig.create(SERVER_KEY, name="AUTH")
        storage = CookieStorage.from_config(config)
        storage.write(context, "uid:42")
        assert "AUTH" in context.cookies
        assert storage.read(context) == "uid:42"

    @pytest.mark.parametrize("make_adapter", [lambda: None] + ADAPTERS)
    @pytest.mark.parametrize("payload", [
        {"__cookie_bytes_b64__": "AAAA"},
        {"__cookie_bytes_b64__": "abc"},
        {"__cookie_dict__": {"uid": 42}},
    ])
    def test_reserved_key_payload(self, context, make_adapter, payload):
        """Test payloads using the serializer's wrapper keys are kept as is."""
        storage = CookieStorage(SERVER_KEY, encrypt_adapter=make_adapter())
        storage.write(context, payload)
        assert storage.read(context) == payload

    @pytest.mark.parametrize("algorithm", ["sha1", "sha512"])
    def test_hash_algorithms(self, context, algorithm):
        storage = CookieStorage(SERVER_KEY, hash_algorithm=algorithm)
        storage.write(context, "uid:42")
        assert storage.read(context) == "uid:42"

    def test_pydantic_payload_read_as_dict(self, storage, context):
        from pydantic import BaseModel

        class Identity(BaseModel):
            uid: int
            name: str

        storage.write(context, Identity(uid=42, name="alice"))
        assert storage.read(context) == {"uid": 42, "name": "alice"}


# --- Test Absent Results ---

class TestAbsent:
    """Tests for reads that find no valid cookie."""

    def test_no_cookie(self, storage, context):
        assert storage.read(context) is None
        assert storage.is_empty(context) is True

    def test_default(self, storage, context):
        assert storage.read(context, default="anonymous") == "anonymous"

    @pytest.mark.parametrize("raw", [
        "",
        "garbage!!",
        "aGVsbG8gd29ybGQ",
    ])
    def test_malformed_value(self, storage, raw):
        context = fresh_context({storage.name: raw})
        assert storage.read(context) is None

    @pytest.mark.parametrize("value", [
        ["not", "a", "record"],
        {IDENTIFIER: "abc", DATA: b"x", SEAL: "s"},
        {IDENTIFIER: "abc", EXPIRATION: None, DATA: b"x", SEAL: "s", "EXTRA": 1},
        {IDENTIFIER: 1, EXPIRATION: None, DATA: b"x", SEAL: "s"},
        {IDENTIFIER: "abc", EXPIRATION: True, DATA: b"x", SEAL: "s"},
        {IDENTIFIER: "abc", EXPIRATION: "123", DATA: b"x", SEAL: "s"},
        {IDENTIFIER: "abc", EXPIRATION: None, DATA: "x", SEAL: "s"},
    ])
    def test_not_a_record(self, storage, value):
        """Test well formed cookies of the wrong shape are absent."""
        context = fresh_context({storage.name: encode(value)})
        assert storage.read(context) is None

    def test_different_server_key(self, storage, context):
        raw = storage.write(context, "uid:42")
        other = CookieStorage("another-secret")
        assert other.read(fresh_context({other.name: raw})) is None

    def test_different_adapter(self, context):
        """Test a cookie encrypted with one cipher doesn't read with another."""
        writer = CookieStorage(SERVER_KEY, encrypt_adapter=PassphraseAdapter())
        raw = writer.write(context, "uid:42")
        reader = CookieStorage(SERVER_KEY, encrypt_adapter=BlockCipherAdapter())
        assert reader.read(fresh_context({reader.name: raw})) is None

    def test_cipher_failure_while_reading(self, context, monkeypatch):
        """Test a backend failure on read gives absent instead of raising."""
        adapter = BlockCipherAdapter("aes", "ctr")
        storage = CookieStorage(SERVER_KEY, encrypt_adapter=adapter)
        storage.write(context, "uid:42")

        class UnavailableCipher:
            def __init__(self, algorithm, mode=None):
                self.algorithm = algorithm

            def decryptor(self):
                raise UnsupportedAlgorithm("cipher not supported by backend")

        monkeypatch.setattr(adapters, "Cipher", UnavailableCipher)
        assert storage.read(context) is None

    def test_plain_cookie_with_encrypting_reader(self, storage, context):
        raw = storage.write(context, "uid:42")
        reader = CookieStorage(SERVER_KEY, encrypt_adapter=PassphraseAdapter())
        assert reader.read(fresh_context({reader.name: raw})) is None


# --- Test Tamper Detection ---

class TestTamperDetection:
    """Tests for modified cookies."""

    def test_example_seal_corruption(self, context):
        """Test corrupting one character of the seal makes the cookie absent."""
        storage = CookieStorage("s3cr3t", lifetime=None)
        raw = storage.write(context, "uid:42")
        assert storage.read(context) == "uid:42"

        record = decode(raw)
        record[SEAL] = replace_char(record[SEAL], -1, "0123456789abcdef")
        context.cookies[storage.name] = encode(record)

        assert storage.read(context) is None

    @pytest.mark.parametrize("make_adapter", [None] + ADAPTERS)
    def test_every_character_of_raw_value(self, make_adapter):
        """Test changing any single character of the cookie is detected."""
        adapter = make_adapter() if make_adapter else None
        storage = CookieStorage(SERVER_KEY, lifetime=60, encrypt_adapter=adapter)
        raw = storage.write(RequestContext(), {"uid": 42})
        alphabet = "AB"
        for index in range(len(raw)):
            tampered = replace_char(raw, index, alphabet)
            context = fresh_context({storage.name: tampered})
            assert storage.read(context) is None, f"position {index} not detected"

    @pytest.mark.parametrize("make_adapter", [None] + ADAPTERS)
    def test_every_byte_of_data(self, make_adapter):
        """Test flipping any byte of the stored data is detected."""
        adapter = make_adapter() if make_adapter else None
        storage = CookieStorage(SERVER_KEY, encrypt_adapter=adapter)
        record = decode(storage.write(RequestContext(), {"uid": 42}))
        data = record[DATA]
        for index in range(len(data)):
            flipped = data[:index] + bytes([data[index] ^ 0x01]) + data[index + 1:]
            context = fresh_context({storage.name: encode({**record, DATA: flipped})})
            assert storage.read(context) is None, f"byte {index} not detected"

    @pytest.mark.parametrize("field,value", [
        (IDENTIFIER, "0" * 32),
        (EXPIRATION, 4102444800),
        (SEAL, "0" * 64),
        (DATA, b'{"uid":1}'),
    ])
    def test_replaced_field(self, storage, context, field, value):
        """Test replacing any record field is detected."""
        record = decode(storage.write(context, {"uid": 42}))
        context.cookies[storage.name] = encode({**record, field: value})
        assert storage.read(context) is None

    def test_forged_payload_with_own_seal(self, context):
        """Test a seal built without the server key is rejected."""
        storage = CookieStorage(SERVER_KEY)
        forger = CookieStorage("guessed-key")
        raw = forger.write(RequestContext(), {"uid": 1, "admin": True})
        context.cookies[storage.name] = raw
        assert storage.read(context) is None

    def test_removed_expiration(self, context):
        """Test dropping the expiration to make a cookie permanent is detected."""
        storage = CookieStorage(SERVER_KEY, lifetime=5)
        record = decode(storage.write(context, "uid:42"))
        context.cookies[storage.name] = encode({**record, EXPIRATION: None})
        assert storage.read(context) is None


# --- Test Expiration ---

class TestExpiration:
    """Tests for cookie lifetime."""

    def test_expired_cookie(self, context):
        """Test a cookie read after its lifetime is absent."""
        with freeze_time("2024-01-01 12:00:00") as frozen:
            storage = CookieStorage(SERVER_KEY, lifetime=1)
            storage.write(context, "uid:42")

            frozen.tick(30)
            assert storage.read(context) == "uid:42"

            frozen.tick(31)
            assert storage.read(context) is None

    def test_expiration_timestamp(self, context, transport):
        with freeze_time("2024-01-01 12:00:00"):
            storage = CookieStorage(SERVER_KEY, lifetime=10)
            raw = storage.write(context, "uid:42")
            expected = int(time.time()) + 600

        assert decode(raw)[EXPIRATION] == expected
        assert transport.cookies[storage.name]["expires"] == expected

    def test_no_lifetime_never_expires(self, storage, context):
        with freeze_time("2024-01-01 12:00:00") as frozen:
            raw = storage.write(context, "uid:42")
            frozen.tick(10 * 365 * 24 * 3600)
            assert storage.read(context) == "uid:42"
        assert decode(raw)[EXPIRATION] is None

    def test_expired_record_with_valid_seal(self, storage, context):
        """Test an expired record is absent even though its seal is valid."""
        identifier, expiration = "abc123", int(time.time()) - 10
        storage.bind_encrypt_adapter(identifier, expiration)
        record = storage.create_cookie(identifier, expiration, "uid:42", context)
        context.cookies[storage.name] = encode(record.to_wire())

        assert storage.verify_seal(record, context) is False
        assert storage.read(context) is None


# --- Test Uniqueness ---

class TestUniqueness:
    """Tests for per-write identifiers."""

    @pytest.mark.parametrize("make_adapter", ADAPTERS)
    def test_two_writes_differ(self, context, make_adapter):
        """Test identical writes give different identifiers, data and seals."""
        storage = CookieStorage(SERVER_KEY, encrypt_adapter=make_adapter())
        first = decode(storage.write(context, {"uid": 42}))
        second = decode(storage.write(context, {"uid": 42}))

        assert first[IDENTIFIER] != second[IDENTIFIER]
        assert first[DATA] != second[DATA]
        assert first[SEAL] != second[SEAL]

    def test_last_write_wins(self, storage, context):
        storage.write(context, "first")
        storage.write(context, "second")
        assert storage.read(context) == "second"


# --- Test Determinism ---

class TestDeterminism:
    """Tests for reproducible seals and ciphertexts."""

    @pytest.mark.parametrize("make_adapter", ADAPTERS)
    def test_create_cookie_is_reproducible(self, context, make_adapter):
        storage = CookieStorage(SERVER_KEY, encrypt_adapter=make_adapter())
        records = []
        for _ in range(2):
            storage.bind_encrypt_adapter("abc123", 1700000000)
            records.append(
                storage.create_cookie("abc123", 1700000000, {"uid": 42}, context)
            )
        assert records[0] == records[1]

    def test_seal_over_plaintext(self, context):
        """Test the seal does not depend on the cipher."""
        plain = CookieStorage(SERVER_KEY)
        encrypted = CookieStorage(SERVER_KEY, encrypt_adapter=PassphraseAdapter())
        assert plain.create_seal("abc", None, "uid:42", context) == \
            encrypted.create_seal("abc", None, "uid:42", context)

    def test_data_is_encrypted(self, context):
        storage = CookieStorage(SERVER_KEY, encrypt_adapter=BlockCipherAdapter())
        record = decode(storage.write(context, "uid:42"))
        assert b"uid:42" not in record[DATA]

    def test_data_is_plain_without_adapter(self, storage, context):
        record = decode(storage.write(context, "uid:42"))
        assert record[DATA] == b'"uid:42"'

    def test_cookie_key_is_per_cookie(self, storage):
        assert storage.create_cookie_key("a", None) != storage.create_cookie_key("b", None)
        assert storage.create_cookie_key("a", None) == storage.create_cookie_key("a", None)


# --- Test Preconditions ---

class TestPreconditions:
    """Tests for secure transport and SSL session binding."""

    def test_secure_over_http(self, context, transport):
        storage = CookieStorage(SERVER_KEY, is_secure=True)
        with pytest.raises(EnvironmentMismatchError):
            storage.write(context, "uid:42")
        with pytest.raises(EnvironmentMismatchError):
            storage.read(context)
        assert context.cookies == {}
        assert transport.cookies == {}

    def test_ssl_binding_without_session(self, context, transport):
        storage = CookieStorage(SERVER_KEY, is_linked_with_ssl=True)
        with pytest.raises(EnvironmentMismatchError):
            storage.write(context, "uid:42")
        with pytest.raises(EnvironmentMismatchError):
            storage.read(context)
        assert transport.cookies == {}

    def test_secure_over_https(self, secure_context):
        storage = CookieStorage(SERVER_KEY, is_secure=True, is_linked_with_ssl=True)
        storage.write(secure_context, "uid:42")
        assert storage.read(secure_context) == "uid:42"
        emitted = secure_context.transport.cookies[storage.name]
        assert emitted["secure"] is True

    def test_ssl_session_binding(self, secure_context):
        """Test a cookie bound to one SSL session is absent in another."""
        storage = CookieStorage(SERVER_KEY, is_linked_with_ssl=True)
        raw = storage.write(secure_context, "uid:42")

        same = fresh_context({storage.name: raw}, ssl_session_id="a1b2c3d4")
        other = fresh_context({storage.name: raw}, ssl_session_id="ffffffff")

        assert storage.read(same) == "uid:42"
        assert storage.read(other) is None

    def test_unbound_cookie_ignores_ssl_session(self, storage, secure_context):
        raw = storage.write(secure_context, "uid:42")
        other = fresh_context({storage.name: raw}, ssl_session_id="ffffffff")
        assert storage.read(other) == "uid:42"


# --- Test Write Failures ---

class TestWriteFailures:
    """Tests for errors raised while writing."""

    def test_unserializable_payload(self, storage, context, transport):
        with pytest.raises(SerializationError):
            storage.write(context, object())
        assert context.cookies == {}
        assert transport.cookies == {}

    @pytest.mark.parametrize("payload", [
        float("nan"),
        {"x": float("nan")},
        {"x": [float("inf")]},
    ])
    def test_non_finite_float_payload(self, storage, context, transport, payload):
        """Test payloads JSON can't hold exactly are refused, not altered."""
        with pytest.raises(SerializationError):
            storage.write(context, payload)
        assert context.cookies == {}
        assert transport.cookies == {}

    def test_adapter_failure_propagates(self, context, transport, monkeypatch):
        adapter = BlockCipherAdapter()
        storage = CookieStorage(SERVER_KEY, encrypt_adapter=adapter)

        def broken(*args, **kwargs):
            raise AdapterError("cipher unavailable")

        monkeypatch.setattr(adapter, "encrypt", broken)
        with pytest.raises(AdapterError):
            storage.write(context, "uid:42")
        assert transport.cookies == {}


# --- Test Transport ---

class TestTransport:
    """Tests for cookie emission."""

    def test_cookie_is_emitted(self, context, transport):
        storage = CookieStorage(
            SERVER_KEY, name="AUTH", path="/app", domain="example.com",
        )
        raw = storage.write(context, "uid:42")

        assert context.cookies["AUTH"] == raw
        assert transport.cookies["AUTH"] == {
            "value": raw,
            "expires": None,
            "path": "/app",
            "domain": "example.com",
            "secure": False,
        }

    def test_clear(self, storage, context, transport):
        storage.write(context, "uid:42")
        assert storage.is_empty(context) is False

        storage.clear(context)

        assert storage.is_empty(context) is True
        assert storage.read(context) is None
        assert transport.cleared == [storage.name]
        assert storage.name not in transport.cookies

    def test_record_repr_hides_content(self, storage, context):
        record = CredentialRecord.from_wire(decode(storage.write(context, "uid:42")))
        assert "uid:42" not in repr(record)
        assert record.identifier in repr(record)


# --- Test Shared Configuration ---

class TestSharedConfiguration:
    """Tests for storages built on one configuration."""

    def test_config_argument(self, context):
        config = CookieStorageConfig.create(SERVER_KEY, lifetime=5)
        storage = CookieStorage(config=config)
        assert storage.config is config
        storage.write(context, "uid:42")
        assert storage.read(context) == "uid:42"

    @pytest.mark.parametrize("kwargs", [
        {"server_key": SERVER_KEY},
        {"lifetime": 5},
    ])
    def test_config_with_options_rejected(self, kwargs):
        config = CookieStorageConfig.create(SERVER_KEY)
        with pytest.raises(ConfigurationError):
            CookieStorage(config=config, **kwargs)

    def test_config_must_be_validated(self):
        with pytest.raises(ConfigurationError):
            CookieStorage(config={"server_key": SERVER_KEY})

    def test_storages_share_the_adapter_lock(self):
        """Test storages on one config serialize access to its adapter."""
        config = CookieStorageConfig.create(
            SERVER_KEY, encrypt_adapter=BlockCipherAdapter()
        )
        first = CookieStorage.from_config(config)
        second = CookieStorage.from_config(config)
        assert first._lock is config.encrypt_adapter.lock
        assert second._lock is first._lock

    @pytest.mark.parametrize("make_adapter", ADAPTERS)
    def test_concurrent_storages(self, make_adapter):
        """Test writes and reads from many threads through one adapter."""
        config = CookieStorageConfig.create(SERVER_KEY, encrypt_adapter=make_adapter())
        storages = [CookieStorage.from_config(config) for _ in range(4)]

        def roundtrip(index):
            storage = storages[index % len(storages)]
            context = fresh_context({})
            payload = {"uid": index, "pad": "x" * (index % 37)}
            storage.write(context, payload)
            return storage.read(context) == payload

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(roundtrip, range(200)))
        assert all(results)

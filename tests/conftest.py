import pytest

from sealed_cookie import CookieStorage, MemoryTransport, RequestContext


SERVER_KEY = "s3cr3t"


@pytest.fixture
def transport():
    """Transport recording emitted cookies."""
    return MemoryTransport()


@pytest.fixture
def context(transport):
    """Plain HTTP request context with an empty cookie jar."""
    return RequestContext(transport=transport)


@pytest.fixture
def secure_context():
    """HTTPS request context bound to an SSL session."""
    return RequestContext(
        transport=MemoryTransport(),
        is_secure=True,
        ssl_session_id="a1b2c3d4",
    )


@pytest.fixture
def storage():
    """Cookie storage without encryption or expiration."""
    return CookieStorage(SERVER_KEY)

"""
Request context — everything a cookie storage needs to know about one request.

The storage never touches global state: the incoming cookie jar, the
transport used to emit cookies and the SSL environment are passed in
explicitly on every call.
"""
import logging
from dataclasses import dataclass, field
from email.utils import formatdate
from typing import Any, Optional, Protocol
from collections.abc import MutableMapping

from aiohttp import web

logger = logging.getLogger("sealed_cookie")


class CookieTransport(Protocol):
    """Emits cookies on the response."""

    def set_cookie(
        self,
        name: str,
        value: str,
        expires: Optional[int] = None,
        path: Optional[str] = None,
        domain: Optional[str] = None,
        secure: bool = False,
    ) -> None:
        ...

    def clear_cookie(
        self,
        name: str,
        path: Optional[str] = None,
        domain: Optional[str] = None,
    ) -> None:
        ...


class MemoryTransport:
    """Transport that records emitted cookies in a dict.

    Useful outside of a web framework and in tests.
    """

    def __init__(self) -> None:
        self.cookies: dict[str, dict[str, Any]] = {}
        self.cleared: list[str] = []

    def set_cookie(
        self,
        name: str,
        value: str,
        expires: Optional[int] = None,
        path: Optional[str] = None,
        domain: Optional[str] = None,
        secure: bool = False,
    ) -> None:
        self.cookies[name] = {
            "value": value,
            "expires": expires,
            "path": path,
            "domain": domain,
            "secure": secure,
        }

    def clear_cookie(
        self,
        name: str,
        path: Optional[str] = None,
        domain: Optional[str] = None,
    ) -> None:
        self.cookies.pop(name, None)
        self.cleared.append(name)


class ResponseTransport:
    """Transport writing Set-Cookie headers on an aiohttp response."""

    def __init__(self, response: web.StreamResponse) -> None:
        self._response = response

    def set_cookie(
        self,
        name: str,
        value: str,
        expires: Optional[int] = None,
        path: Optional[str] = None,
        domain: Optional[str] = None,
        secure: bool = False,
    ) -> None:
        options: dict[str, Any] = {"httponly": True, "secure": secure}
        if expires is not None:
            options["expires"] = formatdate(expires, usegmt=True)
        if path is not None:
            options["path"] = path
        if domain is not None:
            options["domain"] = domain
        self._response.set_cookie(name, value, **options)

    def clear_cookie(
        self,
        name: str,
        path: Optional[str] = None,
        domain: Optional[str] = None,
    ) -> None:
        self._response.del_cookie(name, path=path or "/", domain=domain)


def ssl_session_id(request: web.BaseRequest) -> Optional[str]:
    """Return the hex id of the request's TLS session, if any."""
    transport = request.transport
    if transport is None:
        return None
    ssl_object = transport.get_extra_info("ssl_object")
    if ssl_object is None:
        return None
    session = getattr(ssl_object, "session", None)
    if session is None or not session.id:
        return None
    return session.id.hex()


@dataclass
class RequestContext:
    """State of the current request as seen by the cookie storage.

    ``cookies`` is the request scoped jar: it starts with the cookies sent by
    the client and receives every value written during the request, so a
    read after a write sees the new value.
    """

    cookies: MutableMapping[str, str] = field(default_factory=dict)
    transport: CookieTransport = field(default_factory=MemoryTransport)
    is_secure: bool = False
    ssl_session_id: Optional[str] = None

    def get_cookie(self, name: str) -> Optional[str]:
        return self.cookies.get(name)

    @classmethod
    def from_request(
        cls,
        request: web.BaseRequest,
        response: web.StreamResponse,
    ) -> "RequestContext":
        """Build a context for an aiohttp request/response pair.

        Args:
            request: Incoming request (cookies, scheme and TLS session).
            response: Response that will carry the Set-Cookie headers.

        Returns:
            RequestContext bound to the pair.
        """
        context = cls(
            cookies=dict(request.cookies),
            transport=ResponseTransport(response),
            is_secure=request.secure,
            ssl_session_id=ssl_session_id(request),
        )
        logger.debug(
            "Cookie context for %s %s (secure=%s, ssl_session=%s)",
            request.method, request.path, context.is_secure,
            context.ssl_session_id is not None,
        )
        return context

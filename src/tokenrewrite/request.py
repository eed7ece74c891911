"""Mutable request interface and its mitmproxy adapter."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from mitmproxy import http

QueryFields = Sequence[tuple[str, str]]
CookieFields = Sequence[tuple[str, str]]


class MutableRequest(Protocol):
    """The request operations the token modifier needs."""

    def get_header(self, name: str) -> str: ...

    def set_header(self, name: str, value: str) -> None: ...

    def header_names(self) -> list[str]: ...

    def get_cookies(self) -> list[tuple[str, str]]: ...

    def set_cookies(self, cookies: CookieFields) -> None: ...

    @property
    def raw_query(self) -> str: ...

    @raw_query.setter
    def raw_query(self, value: str) -> None: ...

    def get_query(self) -> list[tuple[str, str]]: ...

    def set_query(self, params: QueryFields) -> None: ...

    def get_body(self) -> str | None: ...

    def set_body(self, text: str) -> None: ...


class MitmRequest:
    """MutableRequest backed by a ``mitmproxy.http.Request``.

    Header lookups go through mitmproxy's case-insensitive ``Headers``.
    Repeated fields of one header are read folded into a single ", "-joined
    value, and writing that header replaces all of its fields with one.
    Cookies and query parameters keep their original order when re-encoded.
    """

    def __init__(self, request: http.Request) -> None:
        self.request = request

    def get_header(self, name: str) -> str:
        """First value of the header, or an empty string."""
        return self.request.headers.get(name, "")

    def set_header(self, name: str, value: str) -> None:
        self.request.headers[name] = value

    def header_names(self) -> list[str]:
        """Distinct header names in request order."""
        return list(dict.fromkeys(self.request.headers.keys()))

    def get_cookies(self) -> list[tuple[str, str]]:
        return [(str(k), str(v)) for k, v in self.request.cookies.items(multi=True)]

    def set_cookies(self, cookies: CookieFields) -> None:
        """Replace every Cookie header with one encoding of ``cookies``."""
        self.request.cookies = list(cookies)  # type: ignore[assignment]

    @property
    def raw_query(self) -> str:
        """Encoded query string without the leading '?'."""
        path = self.request.path
        _, sep, query = path.partition("?")
        return query if sep else ""

    @raw_query.setter
    def raw_query(self, value: str) -> None:
        base = self.request.path.partition("?")[0]
        self.request.path = f"{base}?{value}" if value else base

    def get_query(self) -> list[tuple[str, str]]:
        return [(str(k), str(v)) for k, v in self.request.query.items(multi=True)]

    def set_query(self, params: QueryFields) -> None:
        self.request.query = list(params)  # type: ignore[assignment]

    def get_body(self) -> str | None:
        """Decoded text body, or None when there is none or it is not text."""
        if not self.request.raw_content:
            return None
        try:
            return self.request.get_text(strict=True)
        except ValueError:
            return None

    def set_body(self, text: str) -> None:
        """Replace the body; mitmproxy keeps content-length in sync."""
        self.request.set_text(text)

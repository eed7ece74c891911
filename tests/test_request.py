"""Tests for the mitmproxy request adapter."""

from mitmproxy import http

from tokenrewrite.request import MitmRequest


def make_request(url: str = "http://example.com/", headers: dict[str, str] | None = None) -> MitmRequest:
    return MitmRequest(http.Request.make("GET", url, b"", headers or {}))


class TestHeaders:
    def test_get_missing_header(self) -> None:
        assert make_request().get_header("Authorization") == ""

    def test_get_is_case_insensitive(self) -> None:
        request = make_request(headers={"authorization": "Bearer abc"})
        assert request.get_header("Authorization") == "Bearer abc"

    def test_set_header(self) -> None:
        request = make_request(headers={"X-Token": "a"})
        request.set_header("X-Token", "b")
        assert request.request.headers["x-token"] == "b"

    def test_repeated_header_folds_into_one_field(self) -> None:
        req = http.Request.make(
            "GET",
            "http://example.com/",
            b"",
            http.Headers([(b"Authorization", b"Bearer a"), (b"Authorization", b"Bearer b")]),
        )
        request = MitmRequest(req)

        assert request.get_header("Authorization") == "Bearer a, Bearer b"
        request.set_header("Authorization", "Bearer m_a, Bearer b")
        assert req.headers.get_all("Authorization") == ["Bearer m_a, Bearer b"]

    def test_header_names(self) -> None:
        request = make_request(headers={"Host": "example.com", "X-Token": "a"})
        assert "X-Token" in request.header_names()


class TestCookies:
    def test_get_cookies(self) -> None:
        request = make_request(headers={"Cookie": "a=1; b=2; a=3"})
        assert request.get_cookies() == [("a", "1"), ("b", "2"), ("a", "3")]

    def test_set_cookies_merges_cookie_headers(self) -> None:
        req = http.Request.make(
            "GET",
            "http://example.com/",
            b"",
            http.Headers([(b"Cookie", b"a=1"), (b"Cookie", b"b=2")]),
        )
        request = MitmRequest(req)

        request.set_cookies([("a", "x"), ("b", "2")])

        assert req.headers.get_all("cookie") == ["a=x; b=2"]


class TestQuery:
    def test_raw_query(self) -> None:
        request = make_request("http://example.com/api?token=abc&x=1")
        assert request.raw_query == "token=abc&x=1"

    def test_raw_query_absent(self) -> None:
        assert make_request("http://example.com/api").raw_query == ""

    def test_set_raw_query(self) -> None:
        request = make_request("http://example.com/api?token=abc")
        request.raw_query = "token=xyz"
        assert request.request.path == "/api?token=xyz"
        request.raw_query = ""
        assert request.request.path == "/api"

    def test_query_round_trip_keeps_order(self) -> None:
        request = make_request("http://example.com/api?b=2&a=1&b=3")
        assert request.get_query() == [("b", "2"), ("a", "1"), ("b", "3")]
        request.set_query([("b", "x"), ("a", "1"), ("b", "3")])
        assert request.raw_query == "b=x&a=1&b=3"


class TestBody:
    def test_no_body(self) -> None:
        assert make_request().get_body() is None

    def test_set_body_updates_length(self) -> None:
        req = http.Request.make("POST", "http://example.com/", "token=abc", {"Content-Type": "text/plain"})
        request = MitmRequest(req)

        assert request.get_body() == "token=abc"
        request.set_body("token=modified_abc")

        assert req.content == b"token=modified_abc"
        assert req.headers["content-length"] == "18"

    def test_undecodable_body_reads_as_none(self) -> None:
        req = http.Request.make(
            "POST", "http://example.com/", b"\xff\xfe\xfd", {"Content-Type": "text/plain; charset=utf-8"}
        )
        assert MitmRequest(req).get_body() is None

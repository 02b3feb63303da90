import httpx
import pytest

from httpx_eventsource import EventSourceConnectionError, EventSourceHTTPError, InvalidURIError, UriList
from httpx_eventsource.urilist import ACCEPT

URI_LIST = "# feeds\nhttp://example.com/a\n\n  relative/b  \r\n/c\n#http://example.com/ignored\n"


def test_get_from_resolves_entries(recording_handler):
    handler = recording_handler(httpx.Response(200, headers={"Content-Type": "text/uri-list"}, text=URI_LIST))

    uris = UriList.get_from("http://localhost/lists/feeds.uri", transport=handler.transport)

    assert uris == [
        "http://example.com/a",
        "http://localhost/lists/relative/b",
        "http://localhost/c",
    ]
    request = handler.requests[0]
    assert request.headers["Accept"] == ACCEPT
    assert "Authorization" not in request.headers


def test_relative_entries_use_final_uri_after_redirect():
    def handler(request):
        if request.url.path == "/old.uri":
            return httpx.Response(302, headers={"Location": "http://mirror.local/lists/new.uri"})
        return httpx.Response(200, text="entry\n")

    uris = UriList.get_from("http://localhost/old.uri", transport=httpx.MockTransport(handler))

    assert uris == ["http://mirror.local/lists/entry"]


def test_userinfo_becomes_basic_auth(recording_handler):
    handler = recording_handler(httpx.Response(200, text="http://example.com/a\n"))

    UriList.get_from("http://user:pw@localhost/feeds.uri", transport=handler.transport)

    request = handler.requests[0]
    assert request.headers["Authorization"] == "Basic dXNlcjpwdw=="
    assert str(request.url) == "http://localhost/feeds.uri"


def test_every_iteration_is_a_new_request(recording_handler):
    handler = recording_handler(httpx.Response(200, text="http://example.com/a\n"))
    uri_list = UriList("http://localhost/feeds.uri", transport=handler.transport)

    assert list(uri_list) == list(uri_list)
    assert len(handler.requests) == 2


def test_stream_from_is_lazy(recording_handler):
    handler = recording_handler(httpx.Response(200, text="http://example.com/a\nhttp://example.com/b\n"))

    it = UriList.stream_from("http://localhost/feeds.uri", transport=handler.transport)

    # No se hace ninguna petición hasta consumir el iterador.
    assert handler.requests == []
    assert next(it) == "http://example.com/a"
    assert list(it) == ["http://example.com/b"]


def test_reads_file_uri(tmp_path):
    path = tmp_path / "feeds.uri"
    path.write_text("# local\nother.txt\nhttp://example.com/a\n", encoding="utf-8")

    uris = UriList.get_from(path.as_uri())

    assert len(uris) == 2
    assert uris[0].startswith("file:")
    assert uris[0].endswith(f"{tmp_path.name}/other.txt")
    assert uris[1] == "http://example.com/a"


def test_http_error(recording_handler):
    handler = recording_handler(httpx.Response(404, text="no list"))

    with pytest.raises(EventSourceHTTPError) as exc:
        UriList.get_from("http://localhost/missing.uri", transport=handler.transport)

    assert exc.value.status_code == 404
    assert exc.value.message == "no list"


def test_missing_file_is_http_404(tmp_path):
    with pytest.raises(EventSourceHTTPError) as exc:
        UriList.get_from((tmp_path / "missing.uri").as_uri())

    assert exc.value.status_code == 404


@pytest.mark.parametrize("uri", ["feeds.uri", "ftp://example.com/feeds.uri"])
def test_invalid_uri(uri):
    with pytest.raises(InvalidURIError):
        UriList.get_from(uri)


def test_transport_failure():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(EventSourceConnectionError):
        UriList.get_from("http://localhost/feeds.uri", transport=httpx.MockTransport(handler))

import json

import httpx
import pytest

from hydrus_tagger.exceptions import NetworkError
from hydrus_tagger.hydrus_client import ACCESS_KEY_HEADER, HydrusAPIError, HydrusClient
from hydrus_tagger.models import TagCommit


def make_client(handler):
    client = HydrusClient(
        host="http://hydrus.test:45869",
        access_key="secret",
        transport=httpx.MockTransport(handler),
    )
    client.retry_delay = 0
    return client


def test_get_file_sends_access_key():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, content=b"bytes")

    with make_client(handler) as client:
        assert client.get_file("abc") == b"bytes"

    assert seen[0].url.path == "/get_files/file"
    assert seen[0].url.params["hash"] == "abc"
    assert seen[0].headers[ACCESS_KEY_HEADER] == "secret"


def test_get_render():
    def handler(request):
        assert request.url.path == "/get_files/render"
        assert request.url.params["download"] == "true"
        return httpx.Response(200, content=b"png")

    with make_client(handler) as client:
        assert client.get_render("abc") == b"png"


def test_search_file_hashes():
    def handler(request):
        params = request.url.params
        assert json.loads(params["tags"]) == ["system:untagged", "system:filetype is image"]
        assert params["tag_service_key"] == "key"
        assert params["return_hashes"] == "true"
        return httpx.Response(200, json={"hashes": ["a", "b"], "version": 80})

    with make_client(handler) as client:
        assert client.search_file_hashes(["system:untagged", "system:filetype is image"], "key") == ["a", "b"]


def test_get_services_modern_format():
    def handler(request):
        return httpx.Response(200, json={"services": {
            "6c6f63616c2074616773": {"name": "my tags", "type": 5},
            "abc": {"name": "A.I. Tags", "type": 5},
        }})

    with make_client(handler) as client:
        assert client.get_services() == {"6c6f63616c2074616773": "my tags", "abc": "A.I. Tags"}


def test_get_services_legacy_format():
    def handler(request):
        return httpx.Response(200, json={
            "local_tags": [{"name": "my tags", "service_key": "k1"}],
            "tag_repositories": [{"name": "public tag repository", "service_key": "k2"}],
            "local_files": [{"name": "my files", "service_key": "k3"}],
        })

    with make_client(handler) as client:
        assert client.get_services() == {"k1": "my tags", "k2": "public tag repository"}


def test_add_tags_posts_commit():
    bodies = []

    def handler(request):
        assert request.method == "POST"
        assert request.url.path == "/add_tags/add_tags"
        bodies.append(json.loads(request.content))
        return httpx.Response(200)

    with make_client(handler) as client:
        client.add_tags(TagCommit.for_hash("abc", "key", ["solo", "rating:general"]))

    assert bodies == [{"hashes": ["abc"], "service_keys_to_tags": {"key": ["solo", "rating:general"]}}]


def test_retries_server_errors():
    responses = iter([httpx.Response(503), httpx.Response(200, content=b"ok")])

    def handler(request):
        return next(responses)

    with make_client(handler) as client:
        assert client.get_file("abc") == b"ok"


def test_client_error_is_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(404, text="not found")

    with make_client(handler) as client:
        with pytest.raises(HydrusAPIError) as info:
            client.get_file("abc")

    assert info.value.status_code == 404
    assert len(calls) == 1


def test_transport_errors_become_network_errors():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with make_client(handler) as client:
        with pytest.raises(NetworkError):
            client.api_version()

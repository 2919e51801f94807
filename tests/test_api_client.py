import json

import httpx
import pytest

from downloader_cli.client.base import APIClient, DownloaderError
from downloader_cli.client.endpoints import DownloaderClient


def _client(handler) -> APIClient:
    return APIClient("http://jobs.test", transport=httpx.MockTransport(handler))


def test_direct_json_response():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/download/jobs/j1"
        return httpx.Response(200, json={"jobId": "j1", "status": "queued"})

    with _client(handler) as client:
        assert client.get("/download/jobs/j1") == {"jobId": "j1", "status": "queued"}


def test_envelope_response_is_unwrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"ok": True, "data": {"totalJobs": 0}})

    with _client(handler) as client:
        assert client.get("/download/jobs/stats/overview") == {"totalJobs": 0}


def test_post_sends_json_body():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert json.loads(request.read()) == {"file_ids": [70000]}
        return httpx.Response(200, json={"jobId": "j2", "status": "queued", "totalItems": 1})

    with _client(handler) as client:
        assert client.post("/download/initiate", json={"file_ids": [70000]})["jobId"] == "j2"


def test_check_file_posts_file_id():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/v1/download/check"
        assert json.loads(request.read()) == {"file_id": 70000}
        return httpx.Response(200, json={"fileId": 70000, "available": True})

    client = DownloaderClient(base_url="http://jobs.test", timeout=5)
    client.api = _client(handler)

    with client:
        assert client.check_file(70000)["available"] is True


def test_error_envelope_raises_with_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            404, json={"ok": False, "error": {"message": "Job j3 not found", "code": 404}}
        )

    with _client(handler) as client:
        with pytest.raises(DownloaderError, match="Job j3 not found") as exc_info:
            client.get("/download/jobs/j3")

    assert exc_info.value.status_code == 404


def test_connection_error_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with _client(handler) as client:
        with pytest.raises(DownloaderError, match="Connection failed"):
            client.get("/healthz")

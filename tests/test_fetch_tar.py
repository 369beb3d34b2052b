"""Tests for the artifact fetch helper."""

import io
import os
import sys
import tarfile
from unittest.mock import patch

import httpx
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dockhand import fetch_tar


def make_tarball() -> bytes:
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        payload = b"console.log('hello')\n"
        info = tarfile.TarInfo("web/index.js")
        info.size = len(payload)
        archive.addfile(info, io.BytesIO(payload))
    return buffer.getvalue()


def test_usage_when_arguments_missing(capsys):
    assert fetch_tar.main([]) == 1
    assert "usage:" in capsys.readouterr().err


def test_extracts_streamed_tarball(tmp_path):
    tarball = make_tarball()

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/web"
        return httpx.Response(200, content=tarball)

    def mock_stream(method, url, **kwargs):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return client.stream(method, url)

    with patch("httpx.stream", side_effect=mock_stream):
        assert fetch_tar.main(["http://localhost:7001/web", str(tmp_path)]) == 0

    assert (tmp_path / "web" / "index.js").read_bytes() == b"console.log('hello')\n"


def test_http_error_exits_nonzero(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    def mock_stream(method, url, **kwargs):
        client = httpx.Client(transport=httpx.MockTransport(handler))
        return client.stream(method, url)

    with patch("httpx.stream", side_effect=mock_stream):
        assert fetch_tar.main(["http://localhost:7001/missing", str(tmp_path)]) == 1

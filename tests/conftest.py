"""Shared fixtures for CloudStorage transport tests."""

import io
import re
from typing import Dict, List, Optional, Tuple

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers

from cloudstorage_transport.multipart import BOUNDARY
from cloudstorage_transport.session import ApiSession

TEST_ENDPOINT = "https://api.test"


def make_raw_response(
    status_code: int = 200,
    body: bytes = b"",
    headers: Optional[Dict[str, str]] = None,
    url: str = f"{TEST_ENDPOINT}/api/files",
    method: str = "GET",
    raw=None,
) -> requests.Response:
    """Build a requests.Response over an in-memory body, as sent with stream=True."""
    response = requests.Response()
    response.status_code = status_code
    response.headers = CaseInsensitiveDict(headers or {})
    response.raw = raw if raw is not None else io.BytesIO(body)
    response.url = url
    response.request = requests.Request(method, url).prepare()
    response.encoding = get_encoding_from_headers(response.headers)
    return response


class FakeTransport:
    """Stands in for requests.Session.send, consuming bodies like the network would."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: List[requests.PreparedRequest] = []
        self.bodies: List[bytes] = []
        self.kwargs: List[dict] = []

    def __call__(self, prepared, **kwargs):
        self.requests.append(prepared)
        self.bodies.append(_drain(prepared.body))
        self.kwargs.append(kwargs)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _drain(body) -> bytes:
    if body is None:
        return b""
    if isinstance(body, bytes):
        return body
    if isinstance(body, str):
        return body.encode("utf-8")
    if hasattr(body, "read"):
        return body.read()
    return b"".join(body)


def parse_multipart(body: bytes) -> Dict[str, Tuple[Dict[str, str], bytes]]:
    """Split a multipart body on the fixed boundary into name -> (headers, content)."""
    delimiter = b"--" + BOUNDARY.encode("ascii")
    assert body.startswith(delimiter + b"\r\n")
    assert body.endswith(delimiter + b"--\r\n")

    parts = {}
    for section in body.split(delimiter)[1:-1]:
        assert section.startswith(b"\r\n") and section.endswith(b"\r\n")
        head, _, content = section[2:-2].partition(b"\r\n\r\n")
        headers = dict(line.split(": ", 1) for line in head.decode("utf-8").split("\r\n"))
        name = re.search(r'name="([^"]*)"', headers["Content-Disposition"]).group(1)
        parts[name] = (headers, content)
    return parts


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep developer credentials out of the tests."""
    for name in ("CLOUDSTORAGE_API_KEY", "CLOUDSTORAGE_API_SECRET", "CLOUDSTORAGE_ENDPOINT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_response():
    return make_raw_response


@pytest.fixture
def session():
    api_session = ApiSession(api_key="test_key", endpoint=TEST_ENDPOINT, backoff_factor=0)
    yield api_session
    api_session.close()


@pytest.fixture
def transport(session, monkeypatch):
    """Install a FakeTransport on the session; queue responses with ``transport.responses``."""
    fake = FakeTransport()
    monkeypatch.setattr(session.http, "send", fake)
    return fake


@pytest.fixture
def multipart_parser():
    return parse_multipart

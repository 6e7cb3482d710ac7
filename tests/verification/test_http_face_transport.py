import pytest
import requests

from src.attendance_verification.attendance_verification.core.exceptions import SessionExpiredError, TransportError
from src.attendance_verification.attendance_verification.verification.face_client import (
    HttpFaceVerificationTransport,
    session_from_bearer,
)

URL = "http://face.test/api/verify-face"


class FakeResponse:
    def __init__(self, status_code: int, body=None):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, result):
        self.result = result
        self.posts = []

    def post(self, url, *, json, headers, timeout):
        self.posts.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def compare(session: FakeSession):
    transport = HttpFaceVerificationTransport(URL, timeout=2.0, session=session)
    return transport.compare(captured_image="data:image/jpeg;base64,AAAA", timestamp_ms=1736137500000, bearer_token="tok")


def test_posts_image_timestamp_and_bearer():
    session = FakeSession(FakeResponse(200, {"faceVerified": True, "message": "Face Verified"}))

    result = compare(session)

    assert result.face_verified is True
    post = session.posts[0]
    assert post["url"] == URL
    assert post["json"] == {"capturedImage": "data:image/jpeg;base64,AAAA", "timestamp": 1736137500000}
    assert post["headers"]["Authorization"] == "Bearer tok"
    assert post["timeout"] == 2.0


def test_not_verified_keeps_message():
    result = compare(FakeSession(FakeResponse(200, {"faceVerified": False, "message": "No face detected"})))

    assert result.face_verified is False
    assert result.message == "No face detected"


@pytest.mark.parametrize("status", [401, 403])
def test_rejected_credential_raises_session_expired(status):
    with pytest.raises(SessionExpiredError):
        compare(FakeSession(FakeResponse(status, {"message": "expired"})))


def test_server_error_is_a_transport_error():
    with pytest.raises(TransportError, match="model not loaded"):
        compare(FakeSession(FakeResponse(503, {"message": "model not loaded"})))


def test_body_without_verdict_is_a_transport_error():
    with pytest.raises(TransportError):
        compare(FakeSession(FakeResponse(200, None)))


@pytest.mark.parametrize("exc", [requests.ConnectionError("down"), requests.Timeout("slow")])
def test_network_failures_are_transport_errors(exc):
    with pytest.raises(TransportError):
        compare(FakeSession(exc))


def test_session_from_bearer():
    assert session_from_bearer("Bearer abc").token == "abc"
    assert session_from_bearer("Basic abc") is None
    assert session_from_bearer("Bearer   ") is None
    assert session_from_bearer(None) is None

import httpx
import pytest

from app.detection.exceptions import DetectionFailure, DetectionNetworkError
from app.detection.realitydefender_client_adapter import RealityDefenderClientAdapter


def _make_adapter(handler, api_key: str = "rd-key", poll_attempts: int = 3) -> RealityDefenderClientAdapter:
    return RealityDefenderClientAdapter(
        api_key=api_key,
        base_url="https://rd.test",
        timeout_seconds=5,
        poll_attempts=poll_attempts,
        poll_interval_seconds=0,
        transport=httpx.MockTransport(handler),
    )


def _presigned() -> httpx.Response:
    return httpx.Response(
        200,
        json={"requestId": "req_1", "response": {"signedUrl": "https://bucket.test/upload/req_1"}},
    )


def _result(status: str) -> httpx.Response:
    return httpx.Response(
        200,
        json={
            "requestId": "req_1",
            "resultsSummary": {"status": status, "metadata": {"finalScore": 87.0}},
            "models": [{"name": "rd-img", "status": status, "finalScore": 91}],
        },
    )


class TestDetectMedia:
    def test_full_flow_normalizes_scores(self) -> None:
        calls: list[tuple[str, str]] = []
        polls = iter([_result("ANALYZING"), _result("MANIPULATED")])

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append((request.method, request.url.host + request.url.path))
            if request.url.path == "/api/files/aws-presigned":
                assert request.headers["X-API-KEY"] == "rd-key"
                return _presigned()
            if request.method == "PUT":
                assert request.headers["Content-Type"] == "image/png"
                assert request.content == b"media"
                return httpx.Response(200)
            return next(polls)

        result = _make_adapter(handler).detect_media(
            filename="a.png", content=b"media", mime="image/png"
        )

        assert result == {
            "requestId": "req_1",
            "status": "MANIPULATED",
            "score": 0.87,
            "models": [{"name": "rd-img", "status": "MANIPULATED", "score": 0.91}],
        }
        assert calls[1] == ("PUT", "bucket.test/upload/req_1")
        assert len(calls) == 4

    def test_missing_api_key_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("must not call the detector")

        with pytest.raises(DetectionFailure, match="API key"):
            _make_adapter(handler, api_key="").detect_media(
                filename="a.png", content=b"x", mime="image/png"
            )

    def test_api_error_raises_network_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        with pytest.raises(DetectionNetworkError, match="HTTP 503"):
            _make_adapter(handler).detect_media(filename="a.png", content=b"x", mime="image/png")

    def test_missing_signed_url_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"requestId": "req_1", "response": {}})

        with pytest.raises(DetectionFailure, match="upload URL"):
            _make_adapter(handler).detect_media(filename="a.png", content=b"x", mime="image/png")

    def test_gives_up_after_poll_attempts(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/files/aws-presigned":
                return _presigned()
            if request.method == "PUT":
                return httpx.Response(200)
            return _result("ANALYZING")

        with pytest.raises(DetectionNetworkError, match="not ready after 2 polls"):
            _make_adapter(handler, poll_attempts=2).detect_media(
                filename="a.png", content=b"x", mime="image/png"
            )

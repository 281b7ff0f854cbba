"""
图像生成服务客户端单元测试（httpx.MockTransport，不访问网络）
"""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from vectorcut.interfaces import ConfigurationError, UpstreamServiceError, ValidationError
from vectorcut.services import ImageGenerator, enhance_prompt_for_line_art

IMAGE_URL = "https://images.example.com/cat.png"


class Recorder:
    """按顺序返回预设响应并记录请求"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _generator(recorder: Recorder, api_key: str = "sk-test", **kwargs) -> ImageGenerator:
    client = httpx.Client(transport=httpx.MockTransport(recorder))
    return ImageGenerator(api_key=api_key, client=client, retry_backoff_ms=0, **kwargs)


def _ok() -> httpx.Response:
    return httpx.Response(200, json={"data": [{"url": IMAGE_URL}]})


class TestPromptEnhancement:
    """提示词增强测试"""

    def test_simplifies_complexity(self):
        prompt = enhance_prompt_for_line_art("a realistic, colorful cat")
        assert "realistic" not in prompt
        assert "colorful" not in prompt
        assert "Subject: a simple, black line cat" in prompt

    def test_line_art_instructions(self):
        assert "laser cutting" in enhance_prompt_for_line_art("fox")


class TestGenerateImage:
    """图像生成测试"""

    def test_generate_image_success(self):
        recorder = Recorder(_ok())
        with _generator(recorder) as generator:
            url = generator.generate_image("a cat")

        assert url == IMAGE_URL
        request = recorder.requests[0]
        assert request.url.path.endswith("/images/generations")
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.content)
        assert body["size"] == "1024x1024"
        assert body["n"] == 1
        assert "Subject: a cat" in body["prompt"]

    def test_custom_size(self):
        recorder = Recorder(_ok())
        _generator(recorder).generate_image("a cat", size="1792x1024")
        assert json.loads(recorder.requests[0].content)["size"] == "1792x1024"

    @pytest.mark.parametrize("prompt,size", [("", None), ("   ", None), ("cat", "10x10")])
    def test_invalid_input(self, prompt, size):
        recorder = Recorder()
        with pytest.raises(ValidationError):
            _generator(recorder).generate_image(prompt, size=size)
        assert recorder.requests == []

    def test_missing_api_key(self, runtime_config):
        runtime_config.image_generation.api_key = ""
        with pytest.raises(ConfigurationError):
            _generator(Recorder(), api_key="").generate_image("a cat")

    def test_auth_failure(self):
        """401 → auth_failed，不重试"""
        recorder = Recorder(httpx.Response(401, json={"error": {"message": "bad key"}}))
        with pytest.raises(UpstreamServiceError) as exc_info:
            _generator(recorder).generate_image("a cat")

        assert exc_info.value.auth_failed
        assert exc_info.value.status_code == 401
        assert len(recorder.requests) == 1

    def test_retry_on_server_error(self):
        """5xx 重试后成功"""
        recorder = Recorder(httpx.Response(500), httpx.Response(503), _ok())
        url = _generator(recorder, max_retries=2).generate_image("a cat")

        assert url == IMAGE_URL
        assert len(recorder.requests) == 3

    def test_retry_exhausted(self):
        recorder = Recorder(httpx.Response(429), httpx.Response(429))
        with pytest.raises(UpstreamServiceError) as exc_info:
            _generator(recorder, max_retries=1).generate_image("a cat")

        assert exc_info.value.status_code == 429
        assert not exc_info.value.auth_failed

    def test_no_retry_on_bad_request(self):
        """确定性错误不重试，错误信息带上API说明"""
        recorder = Recorder(
            httpx.Response(400, json={"error": {"message": "content policy violation"}})
        )
        with pytest.raises(UpstreamServiceError, match="content policy violation") as exc_info:
            _generator(recorder, max_retries=3).generate_image("a cat")

        assert exc_info.value.status_code == 400
        assert len(recorder.requests) == 1

    def test_transport_error_retried(self):
        recorder = Recorder(httpx.ConnectError("refused"), _ok())
        assert _generator(recorder, max_retries=1).generate_image("a cat") == IMAGE_URL

    def test_transport_error_exhausted(self):
        recorder = Recorder(httpx.ConnectError("refused"), httpx.ConnectError("refused"))
        with pytest.raises(UpstreamServiceError, match="网络错误"):
            _generator(recorder, max_retries=1).generate_image("a cat")

    def test_missing_url(self):
        recorder = Recorder(httpx.Response(200, json={"data": []}))
        with pytest.raises(UpstreamServiceError, match="缺少URL"):
            _generator(recorder).generate_image("a cat")


class TestDownloadImage:
    """图像下载测试"""

    def test_download_image(self, temp_dir: Path):
        recorder = Recorder(httpx.Response(200, content=b"\x89PNG data"))
        destination = temp_dir / "out" / "cat.png"

        result = _generator(recorder).download_image(IMAGE_URL, destination)
        assert result == destination
        assert destination.read_bytes() == b"\x89PNG data"
        assert str(recorder.requests[0].url) == IMAGE_URL

    def test_download_failure(self, temp_dir: Path):
        recorder = Recorder(httpx.Response(404))
        with pytest.raises(UpstreamServiceError):
            _generator(recorder).download_image(IMAGE_URL, temp_dir / "cat.png")
        assert not (temp_dir / "cat.png").exists()

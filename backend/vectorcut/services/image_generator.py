"""
图像生成服务客户端 - 文本提示 → 远程图像URL → 本地文件

职责：
1. 提示词增强（线稿风格，去掉写实/彩色等易产生复杂图像的词）
2. 调用图像生成API，返回图像URL
3. 下载图像到本地
4. 错误映射：401 → 鉴权失败；其他非2xx → 上游错误（带API错误信息）
5. 有限重试：仅对网络错误/429/5xx，确定性错误不重试

依赖：
- httpx: HTTP客户端

测试要点：
- test_generate_image_success: 返回URL
- test_auth_failure: 401 → auth_failed
- test_retry_on_server_error: 5xx 重试后成功
- test_no_retry_on_bad_request: 400 不重试
"""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path

import httpx

from ..config import get_config
from ..interfaces import (
    ConfigurationError,
    IImageGenerator,
    UpstreamServiceError,
    ValidationError,
)

logger = logging.getLogger(__name__)

LINE_ART_INSTRUCTIONS = (
    "Centered minimalist black continuous line art symbol. "
    "Single unbroken black path on a plain white background. "
    "Clean vector-style drawing with no shading, no gradients, and no fills. "
    "Balanced and symmetrical composition. "
    "Very simple, geometric design suitable for SVG conversion or laser cutting. "
    "Like a modern icon or abstract logo outline."
)

_COMPLEXITY_RE = re.compile(r"realistic|detailed|complex|shaded|3d|photorealistic|textured", re.I)
_COLOR_RE = re.compile(r"colorful|colored|multicolor", re.I)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}
ALLOWED_SIZES = ("1024x1024", "1024x1792", "1792x1024")


def enhance_prompt_for_line_art(prompt: str) -> str:
    """提示词增强"""
    simplified = _COLOR_RE.sub("black line", _COMPLEXITY_RE.sub("simple", prompt))
    return f"{LINE_ART_INSTRUCTIONS} Subject: {simplified}"


class ImageGenerator(IImageGenerator):
    """图像生成API客户端"""

    def __init__(
        self,
        api_key: str | None = None,
        client: httpx.Client | None = None,
        max_retries: int | None = None,
        retry_backoff_ms: int | None = None,
    ):
        config = get_config()
        self.settings = config.image_generation
        self.api_key = api_key or self.settings.api_key
        self.max_retries = config.retries.max_retries if max_retries is None else max_retries
        self.retry_backoff_ms = (
            config.retries.retry_backoff_ms if retry_backoff_ms is None else retry_backoff_ms
        )
        self._client = client or httpx.Client(timeout=config.timeouts.upstream_sec)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ImageGenerator:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def generate_image(self, prompt: str, size: str | None = None) -> str:
        """生成图像，返回远程URL"""
        if not prompt or not prompt.strip():
            raise ValidationError("提示词不能为空")
        size = size or self.settings.size
        if size not in ALLOWED_SIZES:
            raise ValidationError(f"不支持的尺寸: {size}（可选: {', '.join(ALLOWED_SIZES)}）")
        if not self.api_key:
            raise ConfigurationError("未配置图像生成API密钥（image_generation.api_key）")

        enhanced = enhance_prompt_for_line_art(prompt)
        logger.info(f"生成图像: size={size} prompt={prompt!r}")
        logger.debug(f"增强后提示词: {enhanced}")

        response = self._request(
            "POST",
            f"{self.settings.api_base.rstrip('/')}/images/generations",
            json={
                "model": self.settings.model,
                "prompt": enhanced,
                "n": 1,
                "size": size,
                "quality": self.settings.quality,
                "style": self.settings.style,
            },
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

        try:
            return response.json()["data"][0]["url"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise UpstreamServiceError(
                "图像生成响应缺少URL", status_code=response.status_code
            ) from e

    def download_image(self, url: str, destination: Path) -> Path:
        """下载图像到本地"""
        response = self._request("GET", url)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(response.content)
        logger.info(f"图像已下载: {destination}")
        return destination

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """带有限重试的请求"""
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                response = self._client.request(method, url, **kwargs)
            except httpx.TransportError as e:
                if attempt >= attempts:
                    raise UpstreamServiceError(f"图像服务网络错误: {e}") from e
                logger.warning(f"图像服务网络错误，重试 ({attempt}/{self.max_retries}): {e}")
                self._backoff(attempt)
                continue

            if response.is_success:
                return response

            if response.status_code in RETRYABLE_STATUS and attempt < attempts:
                logger.warning(
                    f"图像服务返回 {response.status_code}，重试 ({attempt}/{self.max_retries})"
                )
                self._backoff(attempt)
                continue

            raise self._to_error(response)

        raise UpstreamServiceError("图像服务请求失败")

    def _backoff(self, attempt: int) -> None:
        if self.retry_backoff_ms > 0:
            time.sleep(self.retry_backoff_ms * attempt / 1000)

    @staticmethod
    def _to_error(response: httpx.Response) -> UpstreamServiceError:
        if response.status_code == 401:
            return UpstreamServiceError("API密钥无效，请检查图像生成服务密钥", status_code=401)

        message = f"图像服务错误 {response.status_code}"
        try:
            detail = response.json().get("error", {}).get("message")
        except (ValueError, AttributeError):
            detail = None
        if detail:
            message = f"{message}: {detail}"
        return UpstreamServiceError(message, status_code=response.status_code)

"""
运行期配置 - 读取 config/runtime.yaml

职责：
- 加载外部工具路径/超时/并发/流水线默认值等运行参数
- 提供环境变量覆盖机制（前缀 VECTORCUT_，嵌套分隔符 __）
- 类型安全的配置访问
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

DEFAULT_CONFIG_PATH = Path("config/runtime.yaml")


class ToolsConfig(BaseModel):
    """外部工具可执行文件"""

    convert_exe: str = "convert"
    identify_exe: str = "identify"
    potrace_exe: str = "potrace"
    inkscape_exe: str = "inkscape"


class TimeoutConfig(BaseModel):
    """超时配置（秒）"""

    raster_sec: int = 120
    trace_sec: int = 120
    export_sec: int = 300
    upstream_sec: int = 180


class RetryConfig(BaseModel):
    """重试配置（仅用于图像生成服务的网络调用）"""

    max_retries: int = 2
    retry_backoff_ms: int = 1000


class ConcurrencyConfig(BaseModel):
    """并发配置"""

    max_workers: int = 2


class PipelineConfig(BaseModel):
    """流水线默认参数"""

    target_size_mm: float = 60.0
    render_dpi: float = 96.0
    oversample: int = 4
    threshold: float = 50.0
    colors: int = 8
    turd_size: int = 2
    turn_policy: str = "minority"
    alpha_max: float = 1.0
    despeckle: bool = True
    smooth: bool = True


class CompositorConfig(BaseModel):
    """合成器默认参数"""

    template_path: str = ""
    anchor_x: float | None = 529.0
    anchor_y: float | None = 748.0
    scale: float = 4.0
    default_design_mm: float = 60.0
    stitch_margin_mm: float = 5.0


class ImageGenerationConfig(BaseModel):
    """图像生成服务配置"""

    api_base: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "dall-e-3"
    size: str = "1024x1024"
    quality: str = "standard"
    style: str = "natural"


class LoggingConfig(BaseModel):
    """日志配置"""

    log_level: str = "INFO"
    log_to_file: bool = True


class RuntimeConfig(BaseSettings):
    """运行期配置（支持环境变量覆盖）"""

    # 基础路径
    storage_dir: Path = Path("storage")

    # 各子配置
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    retries: RetryConfig = Field(default_factory=RetryConfig)
    concurrency: ConcurrencyConfig = Field(default_factory=ConcurrencyConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    compositor: CompositorConfig = Field(default_factory=CompositorConfig)
    image_generation: ImageGenerationConfig = Field(default_factory=ImageGenerationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {
        "env_prefix": "VECTORCUT_",
        "env_nested_delimiter": "__",
        "arbitrary_types_allowed": True,
    }

    @classmethod
    def from_yaml(cls, yaml_path: str | Path) -> RuntimeConfig:
        """从YAML文件加载配置"""
        path = Path(yaml_path)
        if not path.exists():
            return cls()

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        runtime_opts = data.get("runtime_options", {})

        kwargs: dict[str, Any] = {
            "tools": ToolsConfig(**cls._extract(runtime_opts, "tools")),
            "timeouts": TimeoutConfig(**cls._extract(runtime_opts, "timeouts")),
            "retries": RetryConfig(**cls._extract(runtime_opts, "retries")),
            "concurrency": ConcurrencyConfig(**cls._extract(runtime_opts, "concurrency")),
            "pipeline": PipelineConfig(**cls._extract(runtime_opts, "pipeline")),
            "compositor": CompositorConfig(**cls._extract(runtime_opts, "compositor")),
            "image_generation": ImageGenerationConfig(
                **cls._extract(runtime_opts, "image_generation")
            ),
            "logging": LoggingConfig(**cls._extract(runtime_opts, "logging")),
        }
        if "storage_dir" in runtime_opts:
            kwargs["storage_dir"] = Path(runtime_opts["storage_dir"])

        config = cls(**kwargs)
        config._resolve_paths(base_dir=path.parent)
        return config

    @staticmethod
    def _extract(data: dict[str, Any], key: str) -> dict[str, Any]:
        """提取并展平配置"""
        section = data.get(key) or {}
        result = {}
        for k, v in section.items():
            if isinstance(v, dict) and "default" in v:
                result[k] = v["default"]
            elif not isinstance(v, dict):
                result[k] = v
        return result

    def _resolve_paths(self, base_dir: Path) -> None:
        """解析相对路径配置为绝对路径（基于配置文件所在目录）"""
        if not self.storage_dir.is_absolute():
            self.storage_dir = (base_dir / self.storage_dir).resolve()
        if self.compositor.template_path:
            template = Path(self.compositor.template_path)
            if not template.is_absolute():
                self.compositor.template_path = str((base_dir / template).resolve())

    def get_job_dir(self, job_id: str) -> Path:
        """获取任务工作目录"""
        return self.storage_dir / "jobs" / job_id

    def get_template_path(self) -> Path:
        """获取固定模板路径（未配置时使用包内模板）"""
        if self.compositor.template_path:
            return Path(self.compositor.template_path)
        return Path(__file__).resolve().parent.parent / "assets" / "iphone12_back.svg"

    def ensure_dirs(self) -> None:
        """确保必要目录存在"""
        self.storage_dir.mkdir(parents=True, exist_ok=True)
        (self.storage_dir / "jobs").mkdir(exist_ok=True)


# 全局配置实例
_config: RuntimeConfig | None = None


def get_config() -> RuntimeConfig:
    """获取全局配置（惰性加载）"""
    global _config
    if _config is None:
        _config = RuntimeConfig.from_yaml(DEFAULT_CONFIG_PATH)
    return _config


def reload_config(yaml_path: str | Path | None = None) -> RuntimeConfig:
    """重新加载配置"""
    global _config
    _config = RuntimeConfig.from_yaml(yaml_path or DEFAULT_CONFIG_PATH)
    return _config


def set_config(config: RuntimeConfig) -> None:
    """替换全局配置（测试与CLI使用）"""
    global _config
    _config = config

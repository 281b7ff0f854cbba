"""
pytest 配置与公共 fixtures

使用方式：
    def test_something(runtime_config, design_svg):
        doc = read_vector_document(design_svg)

测试不启动任何外部进程：流水线使用下方的假适配器，
适配器本身通过 monkeypatch subprocess.run 测试。
"""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from vectorcut.config import RuntimeConfig
from vectorcut.config import runtime_config as runtime_config_module
from vectorcut.interfaces import (
    IBitmapTracer,
    IImageGenerator,
    IRasterProcessor,
    IVectorExporter,
)
from vectorcut.models import DxfSummary, RasterInfo

# 描摹器风格输出：60mm，用户单位 pt，根组带 translate+scale(Y翻转)
POTRACE_SVG = """<?xml version="1.0" standalone="no"?>
<svg version="1.0" xmlns="http://www.w3.org/2000/svg"
 width="60.000000mm" height="60.000000mm" viewBox="0 0 170.000000 170.000000"
 preserveAspectRatio="xMidYMid meet">
<metadata>
Created by potrace 1.16
</metadata>
<g transform="translate(0.000000,170.000000) scale(0.100000,-0.100000)"
fill="#000000" stroke="none">
<path d="M100 1500 l0 -100 100 0 100 0 0 100 0 100 -100 0 -100 0 0 -100z"/>
<path d="M800 800 l0 -200 200 0 0 200 -200 0z"/>
</g>
</svg>
"""

# 小型模板：带命名空间前缀、注释、viewBox
TEMPLATE_SVG = """<?xml version="1.0" encoding="UTF-8"?>
<svg xmlns="http://www.w3.org/2000/svg"
     xmlns:inkscape="http://www.inkscape.org/namespaces/inkscape"
     width="264.58mm" height="370.42mm" viewBox="0 0 1000 1400">
  <!-- case template -->
  <g id="case-outline" inkscape:label="outline" fill="none" stroke="#FF0000">
    <path id="case-edge" d="M 50,50 H 950 V 1350 H 50 Z"/>
  </g>
</svg>
"""


# ============================================================================
# 配置 Fixtures
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """临时目录"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def runtime_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> RuntimeConfig:
    """运行期配置（存储目录指向临时目录，替换全局配置）"""
    config = RuntimeConfig(storage_dir=tmp_path / "storage")
    config.logging.log_to_file = False
    config.retries.retry_backoff_ms = 0
    monkeypatch.setattr(runtime_config_module, "_config", config)
    return config


# ============================================================================
# SVG Fixtures
# ============================================================================

@pytest.fixture
def design_svg(temp_dir: Path) -> Path:
    """描摹器风格设计稿"""
    path = temp_dir / "design.svg"
    path.write_text(POTRACE_SVG, encoding="utf-8")
    return path


@pytest.fixture
def template_svg(temp_dir: Path) -> Path:
    """模板SVG"""
    path = temp_dir / "template.svg"
    path.write_text(TEMPLATE_SVG, encoding="utf-8")
    return path


@pytest.fixture
def raster_source(temp_dir: Path) -> Path:
    """源图像（内容无关，假适配器不读取）"""
    path = temp_dir / "art.png"
    path.write_bytes(b"\x89PNG\r\n\x1a\n")
    return path


# ============================================================================
# 假适配器（记录调用，写出合理的输出文件）
# ============================================================================

class FakeRasterProcessor(IRasterProcessor):
    """假光栅处理器"""

    def __init__(self, palette: list[str] | None = None, colorspace: str = "sRGB"):
        self.palette_colors = palette or ["#000000"]
        self.colorspace = colorspace
        self.calls: list[tuple] = []
        self.preprocess_flags: tuple[bool, bool] | None = None

    def probe(self, input_path: Path) -> RasterInfo:
        self.calls.append(("probe", input_path))
        return RasterInfo(width=512, height=512, colorspace=self.colorspace)

    def normalize_raster(
        self,
        input_path: Path,
        output_path: Path,
        target_size_pixels: int,
        threshold_percent: float,
        despeckle: bool = False,
        smooth: bool = False,
    ) -> Path:
        self.calls.append(("normalize", input_path, output_path, target_size_pixels, threshold_percent))
        self.preprocess_flags = (despeckle, smooth)
        output_path.write_bytes(b"P4\n1 1\n\x00")
        return output_path

    def quantize(self, input_path: Path, output_path: Path, colors: int, target_size_pixels: int) -> Path:
        self.calls.append(("quantize", input_path, output_path, colors, target_size_pixels))
        output_path.write_bytes(b"quantized")
        return output_path

    def palette(self, quantized_path: Path) -> list[str]:
        self.calls.append(("palette", quantized_path))
        return list(self.palette_colors)

    def isolate_color(self, quantized_path: Path, color: str, output_path: Path) -> Path:
        self.calls.append(("isolate", color, output_path))
        output_path.write_bytes(b"P4\n1 1\n\x00")
        return output_path


class FakeTracer(IBitmapTracer):
    """假描摹器：写出描摹器风格SVG"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls: list[tuple] = []

    def vectorize_bitmap(
        self,
        input_path: Path,
        output_path: Path,
        physical_width_mm: float,
        physical_height_mm: float,
        turd_size: int = 2,
        turn_policy: str = "minority",
        alpha_max: float = 1.0,
    ) -> Path:
        from vectorcut.interfaces import ToolExecutionError

        self.calls.append((input_path, output_path, physical_width_mm, physical_height_mm))
        if self.fail:
            raise ToolExecutionError("vectorize", "potrace 返回非零", exit_code=1)
        output_path.write_text(POTRACE_SVG, encoding="utf-8")
        return output_path


class FakeExporter(IVectorExporter):
    """假导出器"""

    def __init__(self):
        self.calls: list[tuple[Path, Path]] = []

    def export_to_dxf(self, input_path: Path, output_path: Path) -> DxfSummary:
        self.calls.append((input_path, output_path))
        output_path.write_text("0\nEOF\n", encoding="utf-8")
        return DxfSummary(entity_count=2, extents_min=(0.0, 0.0), extents_max=(60.0, 60.0), insunits=4)


class FakeGenerator(IImageGenerator):
    """假图像生成服务"""

    def __init__(self):
        self.prompts: list[str] = []

    def generate_image(self, prompt: str, size: str | None = None) -> str:
        self.prompts.append(prompt)
        return "https://images.example.com/generated.png"

    def download_image(self, url: str, destination: Path) -> Path:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(b"\x89PNG\r\n\x1a\n")
        return destination


@pytest.fixture
def fake_raster() -> FakeRasterProcessor:
    return FakeRasterProcessor()


@pytest.fixture
def fake_tracer() -> FakeTracer:
    return FakeTracer()


@pytest.fixture
def fake_exporter() -> FakeExporter:
    return FakeExporter()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()

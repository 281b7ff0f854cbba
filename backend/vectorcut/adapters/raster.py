"""
光栅处理器 - ImageMagick 封装

职责：
- 归一化：缩放适配 → 白底补成正方形 → 灰度 → 阈值 → 1-bit（补白而非裁切）
- 分色：无抖动减色 → 读取调色板 → 逐色生成二值掩膜
- 读取图像尺寸/色彩空间

依赖：
- ImageMagick convert/identify（路径由运行期配置指定）

测试要点：
- test_normalize_command: 命令参数（resize/extent/threshold/bilevel）
- test_threshold_out_of_range: 参数越界
- test_palette_order: 调色板顺序确定且去重
"""

from __future__ import annotations

import re
from pathlib import Path

from ..config import get_config
from ..geometry import format_number
from ..interfaces import IRasterProcessor, ToolExecutionError, ValidationError
from ..models import RasterInfo
from .runner import run_tool

_HEX_COLOR_RE = re.compile(r"^#[0-9A-Fa-f]{6}$")
_HISTOGRAM_COLOR_RE = re.compile(r"#([0-9A-Fa-f]{6})(?:[0-9A-Fa-f]{2})?(?![0-9A-Fa-f])")


class RasterProcessor(IRasterProcessor):
    """ImageMagick 光栅处理器"""

    def __init__(
        self,
        convert_exe: str | None = None,
        identify_exe: str | None = None,
        timeout: int | None = None,
    ):
        config = get_config()
        self.convert_exe = convert_exe or config.tools.convert_exe
        self.identify_exe = identify_exe or config.tools.identify_exe
        self.timeout = timeout or config.timeouts.raster_sec

    def probe(self, input_path: Path) -> RasterInfo:
        """读取图像尺寸与色彩空间（多帧取首帧）"""
        self._ensure_input(input_path)
        cmd = [self.identify_exe, "-format", "%w %h %[colorspace]", f"{input_path}[0]"]
        result = run_tool("probe", cmd, self.timeout)

        parts = result.stdout.strip().split()
        try:
            return RasterInfo(
                width=int(parts[0]),
                height=int(parts[1]),
                colorspace=parts[2] if len(parts) > 2 else "",
            )
        except (IndexError, ValueError) as e:
            raise ToolExecutionError(
                "probe", f"无法解析identify输出: {result.stdout!r}", exit_code=0
            ) from e

    def normalize_raster(
        self,
        input_path: Path,
        output_path: Path,
        target_size_pixels: int,
        threshold_percent: float,
        despeckle: bool = False,
        smooth: bool = False,
    ) -> Path:
        """归一化为 target×target 的单色位图"""
        self._ensure_input(input_path)
        self._check_size(target_size_pixels)
        if not 0 <= threshold_percent <= 100:
            raise ValidationError(f"阈值必须在0-100之间: {threshold_percent}")

        size = f"{target_size_pixels}x{target_size_pixels}"
        cmd = [
            self.convert_exe,
            str(input_path),
            "-background", "white",
            "-alpha", "remove",
            "-alpha", "off",
            # 先缩放适配，再居中补白到正方形（不裁切）
            "-resize", size,
            "-gravity", "center",
            "-extent", size,
            "-colorspace", "Gray",
        ]
        if despeckle:
            cmd.append("-despeckle")
        if smooth:
            cmd += ["-median", "2"]
        cmd += [
            "-threshold", f"{format_number(threshold_percent)}%",
            "-type", "bilevel",
            str(output_path),
        ]

        run_tool("normalize_raster", cmd, self.timeout, expected_output=output_path)
        return output_path

    def quantize(
        self,
        input_path: Path,
        output_path: Path,
        colors: int,
        target_size_pixels: int,
    ) -> Path:
        """无抖动减色到最多 colors 种颜色（同样补白成正方形）"""
        self._ensure_input(input_path)
        self._check_size(target_size_pixels)
        if colors < 1:
            raise ValidationError(f"分色数量必须≥1: {colors}")

        size = f"{target_size_pixels}x{target_size_pixels}"
        cmd = [
            self.convert_exe,
            str(input_path),
            "-background", "white",
            "-alpha", "remove",
            "-alpha", "off",
            "-resize", size,
            "-gravity", "center",
            "-extent", size,
            "+dither",
            "-colors", str(colors),
            str(output_path),
        ]
        run_tool("quantize", cmd, self.timeout, expected_output=output_path)
        return output_path

    def palette(self, quantized_path: Path) -> list[str]:
        """调色板（直方图顺序，去重，大写 #RRGGBB）"""
        self._ensure_input(quantized_path)
        cmd = [
            self.convert_exe,
            str(quantized_path),
            "-depth", "8",
            "-format", "%c",
            "histogram:info:-",
        ]
        result = run_tool("palette", cmd, self.timeout)

        colors: list[str] = []
        for line in result.stdout.splitlines():
            match = _HISTOGRAM_COLOR_RE.search(line)
            if not match:
                continue
            color = f"#{match.group(1).upper()}"
            if color not in colors:
                colors.append(color)

        if not colors:
            raise ToolExecutionError("palette", "调色板为空", exit_code=0)
        return colors

    def isolate_color(self, quantized_path: Path, color: str, output_path: Path) -> Path:
        """该颜色 → 黑，其余 → 白"""
        self._ensure_input(quantized_path)
        if not _HEX_COLOR_RE.match(color):
            raise ValidationError(f"颜色格式错误: {color}")

        # 透明作为哨兵色：目标色先变透明，其余变白，再铺黑底
        cmd = [
            self.convert_exe,
            str(quantized_path),
            "-alpha", "set",
            "-fill", "none",
            "-opaque", color,
            "-fill", "white",
            "+opaque", "none",
            "-background", "black",
            "-alpha", "remove",
            "-alpha", "off",
            "-type", "bilevel",
            str(output_path),
        ]
        run_tool("isolate_color", cmd, self.timeout, expected_output=output_path)
        return output_path

    @staticmethod
    def _ensure_input(input_path: Path) -> None:
        if not input_path.exists():
            raise ValidationError(f"输入文件不存在: {input_path}")

    @staticmethod
    def _check_size(target_size_pixels: int) -> None:
        if target_size_pixels <= 0:
            raise ValidationError(f"目标尺寸必须为正整数: {target_size_pixels}")

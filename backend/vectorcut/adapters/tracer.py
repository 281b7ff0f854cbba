"""
位图描摹器 - potrace 封装

职责：
- 单色位图（PBM）→ SVG，按物理尺寸（mm）输出
- 校验简化参数（turdsize/turnpolicy/alphamax）

依赖：
- potrace 可执行文件（路径由运行期配置指定）
"""

from __future__ import annotations

from pathlib import Path

from ..config import get_config
from ..geometry import format_number
from ..interfaces import IBitmapTracer, ValidationError
from ..models.job import TURN_POLICIES
from .runner import run_tool

ALPHA_MAX_LIMIT = 1.3334


class BitmapTracer(IBitmapTracer):
    """potrace 描摹器"""

    def __init__(self, exe_path: str | None = None, timeout: int | None = None):
        config = get_config()
        self.exe_path = exe_path or config.tools.potrace_exe
        self.timeout = timeout or config.timeouts.trace_sec

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
        """描摹为指定物理尺寸的SVG"""
        if not input_path.exists():
            raise ValidationError(f"位图不存在: {input_path}")
        if physical_width_mm <= 0 or physical_height_mm <= 0:
            raise ValidationError(
                f"物理尺寸必须为正数: {physical_width_mm}x{physical_height_mm}mm"
            )
        if turd_size < 0:
            raise ValidationError(f"turd_size 不能为负: {turd_size}")
        if turn_policy not in TURN_POLICIES:
            raise ValidationError(f"未知 turn_policy: {turn_policy}")
        if not 0 <= alpha_max <= ALPHA_MAX_LIMIT:
            raise ValidationError(f"alpha_max 必须在0-{ALPHA_MAX_LIMIT}之间: {alpha_max}")

        cmd = [
            self.exe_path,
            str(input_path),
            "-s",
            "-o", str(output_path),
            "--width", f"{format_number(physical_width_mm)}mm",
            "--height", f"{format_number(physical_height_mm)}mm",
            "-t", str(turd_size),
            "--turnpolicy", turn_policy,
            "--alphamax", format_number(alpha_max),
        ]
        run_tool("vectorize", cmd, self.timeout, expected_output=output_path)
        return output_path

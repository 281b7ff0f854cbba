"""
DXF 导出器 - Inkscape 封装 + ezdxf 回读校验

职责：
- SVG → DXF（保留声明的物理单位）
- 回读DXF：实体数、几何范围、$INSUNITS
- 回读失败视为导出失败

依赖：
- inkscape 可执行文件（1.x 命令行）
- ezdxf: DXF解析

测试要点：
- test_export_command: 命令参数
- test_inspect_dxf_extents: 回读范围
- test_unreadable_dxf: 无法解析 → ToolExecutionError
"""

from __future__ import annotations

import logging
from pathlib import Path

import ezdxf
from ezdxf import bbox

from ..config import get_config
from ..interfaces import IVectorExporter, ToolExecutionError, ValidationError
from ..models import DxfSummary
from .runner import run_tool

logger = logging.getLogger(__name__)


class DxfExporter(IVectorExporter):
    """Inkscape DXF 导出器"""

    def __init__(self, exe_path: str | None = None, timeout: int | None = None):
        config = get_config()
        self.exe_path = exe_path or config.tools.inkscape_exe
        self.timeout = timeout or config.timeouts.export_sec

    def export_to_dxf(self, input_path: Path, output_path: Path) -> DxfSummary:
        """SVG 转 DXF"""
        if not input_path.exists():
            raise ValidationError(f"SVG文件不存在: {input_path}")

        cmd = [
            self.exe_path,
            str(input_path),
            "--export-type=dxf",
            f"--export-filename={output_path}",
        ]
        run_tool("export_dxf", cmd, self.timeout, expected_output=output_path)

        summary = inspect_dxf(output_path)
        logger.info(
            f"DXF导出完成: {output_path.name} entities={summary.entity_count} "
            f"size={summary.width}x{summary.height}"
        )
        return summary


def inspect_dxf(dxf_path: Path) -> DxfSummary:
    """回读DXF摘要"""
    try:
        doc = ezdxf.readfile(str(dxf_path))
    except (IOError, ezdxf.DXFStructureError) as e:
        raise ToolExecutionError("export_dxf", f"DXF无法解析: {dxf_path}: {e}", exit_code=0) from e

    msp = doc.modelspace()
    extents = bbox.extents(msp)

    summary = DxfSummary(
        entity_count=len(msp),
        insunits=int(doc.header.get("$INSUNITS", 0)),
    )
    if extents.has_data:
        summary.extents_min = (extents.extmin.x, extents.extmin.y)
        summary.extents_max = (extents.extmax.x, extents.extmax.y)
    return summary

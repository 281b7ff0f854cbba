"""
外部工具适配器 - 光栅处理/位图描摹/DXF导出

子模块：
- runner: 子进程执行（超时/退出码/输出校验）
- raster: ImageMagick 归一化与分色
- tracer: potrace 描摹
- exporter: Inkscape 导出 DXF + ezdxf 回读
"""

from .exporter import DxfExporter, inspect_dxf
from .raster import RasterProcessor
from .runner import run_tool
from .tracer import BitmapTracer

__all__ = [
    "RasterProcessor",
    "BitmapTracer",
    "DxfExporter",
    "inspect_dxf",
    "run_tool",
]

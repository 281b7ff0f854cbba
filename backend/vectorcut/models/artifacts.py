"""
阶段结果模型 - 各适配器/合成器的返回结构
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from ..geometry import CompositePlacement


class RasterInfo(BaseModel):
    """图像基本信息（identify）"""
    width: int
    height: int
    colorspace: str = ""

    @property
    def is_grayscale(self) -> bool:
        return "gray" in self.colorspace.lower()


class DxfSummary(BaseModel):
    """DXF回读摘要"""
    entity_count: int = 0
    extents_min: tuple[float, float] | None = None
    extents_max: tuple[float, float] | None = None
    insunits: int = 0

    @property
    def width(self) -> float | None:
        if self.extents_min is None or self.extents_max is None:
            return None
        return self.extents_max[0] - self.extents_min[0]

    @property
    def height(self) -> float | None:
        if self.extents_min is None or self.extents_max is None:
            return None
        return self.extents_max[1] - self.extents_min[1]


class CompositeResult(BaseModel):
    """合成结果"""
    output_path: Path
    placement: CompositePlacement
    path_count: int = 0
    layer_count: int = 0


class ProgressEvent(BaseModel):
    """阶段进度事件（外层SSE按 to_event() 推送）"""
    step: int = Field(..., ge=1, le=4)
    stage: str
    message: str = ""
    complete: bool = False

    def to_event(self) -> dict:
        """固定三键负载，消费方无需判断键是否存在"""
        return {"step": self.step, "message": self.message, "complete": self.complete}

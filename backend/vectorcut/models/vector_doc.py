"""
矢量文档模型 - SVG 的结构化内存表示

描摹器输出通常是：
    <svg width="60mm" height="60mm" viewBox="0 0 170.08 170.08">
      <g transform="translate(0,170.08) scale(0.0189,-0.0189)" fill="#000000">
        <path d="..."/>
      </g>
    </svg>
外层 <g> 的 transform 记为 root_transform（必须保留，否则路径渲染错位），
其下的路径按渲染顺序分组为 layers（分色结果每种颜色一层）。
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

from pydantic import BaseModel, Field

from ..geometry import CSS_DPI, TRACER_DPI, Transform, format_number, mm_to_pixels

DEFAULT_DESIGN_MM = 60.0


class PathElement(BaseModel):
    """单条路径（属性原样保留）"""
    d: str
    attributes: dict[str, str] = Field(default_factory=dict)

    @property
    def fill(self) -> str | None:
        return self.attributes.get("fill")


class PathLayer(BaseModel):
    """路径层（对应一个 <g>，或外层组直属路径）"""
    attributes: dict[str, str] = Field(default_factory=dict)
    transform: Transform = Field(default_factory=Transform)
    paths: list[PathElement] = Field(default_factory=list)

    @property
    def fill(self) -> str | None:
        return self.attributes.get("fill")


class ViewBox(BaseModel):
    """用户坐标系范围"""
    min_x: float = 0.0
    min_y: float = 0.0
    width: float
    height: float

    def to_svg(self) -> str:
        return " ".join(
            format_number(v) for v in (self.min_x, self.min_y, self.width, self.height)
        )


class VectorDocument(BaseModel):
    """矢量文档"""
    width_mm: float | None = None
    height_mm: float | None = None
    view_box: ViewBox | None = None
    root_transform: Transform = Field(default_factory=Transform)
    root_attributes: dict[str, str] = Field(default_factory=dict)
    layers: list[PathLayer] = Field(default_factory=list)
    source_path: Path | None = None

    @property
    def path_count(self) -> int:
        return sum(len(layer.paths) for layer in self.layers)

    @property
    def colors(self) -> list[str]:
        """各层填充色（按层顺序）"""
        return [layer.fill for layer in self.layers if layer.fill]

    def iter_paths(self) -> Iterator[PathElement]:
        for layer in self.layers:
            yield from layer.paths

    def user_size(self, default_mm: float = DEFAULT_DESIGN_MM) -> tuple[float, float]:
        """
        用户坐标系下的设计稿尺寸

        优先级：viewBox > width/height（按CSS像素换算）> 默认尺寸（描摹器72DPI）
        """
        if self.view_box is not None:
            return (self.view_box.width, self.view_box.height)
        if self.width_mm is not None and self.height_mm is not None:
            return (mm_to_pixels(self.width_mm, CSS_DPI), mm_to_pixels(self.height_mm, CSS_DPI))
        size = mm_to_pixels(default_mm, TRACER_DPI)
        return (size, size)

    def user_origin(self) -> tuple[float, float]:
        if self.view_box is not None:
            return (self.view_box.min_x, self.view_box.min_y)
        return (0.0, 0.0)

    def physical_size_mm(self, default_mm: float = DEFAULT_DESIGN_MM) -> tuple[float, float]:
        """物理尺寸（mm），未声明时使用默认尺寸"""
        if self.width_mm is not None and self.height_mm is not None:
            return (self.width_mm, self.height_mm)
        return (default_mm, default_mm)

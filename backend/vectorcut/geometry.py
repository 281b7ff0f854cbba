"""
单位与几何工具 - 毫米/像素换算与二维仿射变换

职责：
1. mm ↔ px 换算（精确浮点，仅在输出时取整）
2. 仿射变换的组合（组合顺序必须由调用方显式指定）
3. 居中变换：把源包围盒中心映射到目标锚点（Y轴方向可配置）

约定：
- Transform 采用 SVG matrix(a b c d e f) 语义：
  x' = a*x + c*y + e, y' = b*x + d*y + f
- a @ b 表示先应用 b 再应用 a（与 SVG transform 列表从左到右书写一致）

测试要点：
- test_mm_pixels_roundtrip: 往返换算
- test_composition_order: 两种组合顺序不等价
- test_centering_maps_center: 中心映射到锚点（含Y翻转）
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum

MM_PER_INCH = 25.4
CSS_DPI = 96.0      # SVG/CSS 像素
TRACER_DPI = 72.0   # potrace 输出以 pt 为用户单位

# 长度单位 → 毫米
_UNIT_TO_MM: dict[str, float] = {
    "mm": 1.0,
    "cm": 10.0,
    "in": MM_PER_INCH,
    "pt": MM_PER_INCH / 72.0,
    "pc": MM_PER_INCH / 6.0,
    "px": MM_PER_INCH / CSS_DPI,
    "": MM_PER_INCH / CSS_DPI,
}

_LENGTH_RE = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*([a-z%]*)\s*$")
_TRANSFORM_RE = re.compile(r"(matrix|translate|scale|rotate|skewX|skewY)\s*\(([^)]*)\)")
_ARGS_SPLIT_RE = re.compile(r"[\s,]+")


def mm_to_pixels(mm: float, dpi: float) -> float:
    """毫米 → 像素"""
    if dpi <= 0:
        raise ValueError(f"DPI必须为正数: {dpi}")
    return mm * dpi / MM_PER_INCH


def pixels_to_mm(pixels: float, dpi: float) -> float:
    """像素 → 毫米"""
    if dpi <= 0:
        raise ValueError(f"DPI必须为正数: {dpi}")
    return pixels * MM_PER_INCH / dpi


def parse_length_mm(text: str | None) -> float | None:
    """解析SVG长度属性为毫米（不支持百分比，返回None）"""
    if not text:
        return None
    match = _LENGTH_RE.match(text)
    if not match:
        return None
    value, unit = match.groups()
    factor = _UNIT_TO_MM.get(unit)
    if factor is None:
        return None
    return float(value) * factor


def format_number(value: float, precision: int = 6) -> str:
    """输出用数值格式化（唯一的取整点）"""
    text = f"{value:.{precision}f}".rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text


@dataclass(frozen=True)
class Transform:
    """二维仿射变换"""
    a: float = 1.0
    b: float = 0.0
    c: float = 0.0
    d: float = 1.0
    e: float = 0.0
    f: float = 0.0

    @classmethod
    def identity(cls) -> Transform:
        return cls()

    @classmethod
    def translate(cls, tx: float, ty: float = 0.0) -> Transform:
        return cls(e=tx, f=ty)

    @classmethod
    def scale(cls, sx: float, sy: float | None = None) -> Transform:
        return cls(a=sx, d=sx if sy is None else sy)

    @classmethod
    def rotate(cls, degrees: float, cx: float = 0.0, cy: float = 0.0) -> Transform:
        rad = math.radians(degrees)
        cos, sin = math.cos(rad), math.sin(rad)
        rotation = cls(a=cos, b=sin, c=-sin, d=cos)
        if cx or cy:
            return cls.translate(cx, cy) @ rotation @ cls.translate(-cx, -cy)
        return rotation

    @property
    def is_identity(self) -> bool:
        return self == Transform()

    def apply(self, x: float, y: float) -> tuple[float, float]:
        """变换一个点"""
        return (
            self.a * x + self.c * y + self.e,
            self.b * x + self.d * y + self.f,
        )

    def __matmul__(self, other: Transform) -> Transform:
        if not isinstance(other, Transform):
            return NotImplemented
        return Transform(
            a=self.a * other.a + self.c * other.b,
            b=self.b * other.a + self.d * other.b,
            c=self.a * other.c + self.c * other.d,
            d=self.b * other.c + self.d * other.d,
            e=self.a * other.e + self.c * other.f + self.e,
            f=self.b * other.e + self.d * other.f + self.f,
        )

    def inverse(self) -> Transform:
        det = self.a * self.d - self.b * self.c
        if det == 0:
            raise ValueError("变换不可逆")
        return Transform(
            a=self.d / det,
            b=-self.b / det,
            c=-self.c / det,
            d=self.a / det,
            e=(self.c * self.f - self.d * self.e) / det,
            f=(self.b * self.e - self.a * self.f) / det,
        )

    def to_svg(self) -> str:
        """输出为SVG transform属性值（单位矩阵返回空串）"""
        if self.is_identity:
            return ""
        if self.b == 0 and self.c == 0:
            parts = []
            if self.e or self.f:
                parts.append(f"translate({format_number(self.e)},{format_number(self.f)})")
            if self.a != 1 or self.d != 1:
                if self.a == self.d:
                    parts.append(f"scale({format_number(self.a)})")
                else:
                    parts.append(f"scale({format_number(self.a)},{format_number(self.d)})")
            return " ".join(parts)
        values = ",".join(format_number(v) for v in (self.a, self.b, self.c, self.d, self.e, self.f))
        return f"matrix({values})"


def parse_transform(text: str | None) -> Transform:
    """
    解析SVG transform属性

    Raises:
        ValueError: 无法识别的变换语法
    """
    if not text or not text.strip():
        return Transform()

    result = Transform()
    consumed = 0
    for match in _TRANSFORM_RE.finditer(text):
        gap = text[consumed:match.start()]
        if gap.strip(" \t\r\n,"):
            raise ValueError(f"无法解析的变换: {text!r}")
        consumed = match.end()

        name, raw_args = match.groups()
        args = [float(v) for v in _ARGS_SPLIT_RE.split(raw_args.strip()) if v]
        result = result @ _build_transform(name, args, text)

    if text[consumed:].strip(" \t\r\n,"):
        raise ValueError(f"无法解析的变换: {text!r}")
    return result


def _build_transform(name: str, args: list[float], text: str) -> Transform:
    if name == "matrix" and len(args) == 6:
        return Transform(*args)
    if name == "translate" and len(args) in (1, 2):
        return Transform.translate(*args)
    if name == "scale" and len(args) in (1, 2):
        return Transform.scale(*args)
    if name == "rotate" and len(args) in (1, 3):
        return Transform.rotate(*args)
    if name == "skewX" and len(args) == 1:
        return Transform(c=math.tan(math.radians(args[0])))
    if name == "skewY" and len(args) == 1:
        return Transform(b=math.tan(math.radians(args[0])))
    raise ValueError(f"变换参数个数错误: {text!r}")


class CompositionOrder(str, Enum):
    """平移与缩放的组合顺序（按作用于点的先后）"""
    TRANSLATE_THEN_SCALE = "translate_then_scale"  # p' = s*(p + d)
    SCALE_THEN_TRANSLATE = "scale_then_translate"  # p' = s*p + d


def compose_translate_scale(
    dx: float,
    dy: float,
    s: float,
    *,
    order: CompositionOrder,
) -> Transform:
    """组合平移与缩放，顺序必须显式给出"""
    translation = Transform.translate(dx, dy)
    scaling = Transform.scale(s)
    if order == CompositionOrder.TRANSLATE_THEN_SCALE:
        return scaling @ translation
    if order == CompositionOrder.SCALE_THEN_TRANSLATE:
        return translation @ scaling
    raise ValueError(f"未知组合顺序: {order}")


def centering_transform(
    source_width: float,
    source_height: float,
    target_center_x: float,
    target_center_y: float,
    scale: float,
    *,
    y_sign: int = 1,
    source_min_x: float = 0.0,
    source_min_y: float = 0.0,
) -> Transform:
    """
    居中变换：源包围盒中心 → 目标点，源范围 → (w*s, h*s) 且以目标点为中心

    Args:
        y_sign: 1 保持Y轴方向，-1 翻转Y轴（描摹器坐标系常见）
    """
    return CompositePlacement.for_design(
        source_width,
        source_height,
        anchor=(target_center_x, target_center_y),
        scale=scale,
        y_sign=y_sign,
        min_x=source_min_x,
        min_y=source_min_y,
    ).transform


@dataclass(frozen=True)
class CompositePlacement:
    """合成放置参数（派生值，不持久化）"""
    anchor_x: float
    anchor_y: float
    scale: float
    offset_x: float
    offset_y: float
    y_sign: int = 1

    @classmethod
    def for_design(
        cls,
        width: float,
        height: float,
        anchor: tuple[float, float],
        scale: float,
        y_sign: int = 1,
        min_x: float = 0.0,
        min_y: float = 0.0,
    ) -> CompositePlacement:
        """根据设计稿尺寸计算放置参数（offset把设计稿原点移到包围盒中心）"""
        if width <= 0 or height <= 0:
            raise ValueError(f"设计稿尺寸必须为正数: {width}x{height}")
        if scale <= 0:
            raise ValueError(f"缩放系数必须为正数: {scale}")
        if y_sign not in (1, -1):
            raise ValueError(f"y_sign只能为1或-1: {y_sign}")
        return cls(
            anchor_x=anchor[0],
            anchor_y=anchor[1],
            scale=scale,
            offset_x=-(min_x + width / 2),
            offset_y=-(min_y + height / 2),
            y_sign=y_sign,
        )

    @property
    def anchor_transform(self) -> Transform:
        return Transform.translate(self.anchor_x, self.anchor_y)

    @property
    def scale_offset_transform(self) -> Transform:
        return Transform.scale(self.scale, self.scale * self.y_sign) @ Transform.translate(
            self.offset_x, self.offset_y
        )

    @property
    def transform(self) -> Transform:
        """外→内：平移到锚点 · 缩放 · 中心偏移"""
        return self.anchor_transform @ self.scale_offset_transform

    def svg_anchor(self) -> str:
        return f"translate({format_number(self.anchor_x)},{format_number(self.anchor_y)})"

    def svg_scale_offset(self) -> str:
        if self.y_sign == 1:
            scale = f"scale({format_number(self.scale)})"
        else:
            scale = f"scale({format_number(self.scale)},{format_number(-self.scale)})"
        return f"{scale} translate({format_number(self.offset_x)},{format_number(self.offset_y)})"

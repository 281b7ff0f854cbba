"""
模板合成器 - 把描摹设计稿居中合入固定模板（如 iPhone 12 背板）

流程：
1. 结构化解析设计稿，捕获外层组的 transform（作为前缀保留）
2. 设计稿尺寸：viewBox > width/height > 默认 60mm
3. offset = -(w/2, h/2)，把设计稿原点移到包围盒中心
4. 锚点/缩放：调用参数 > 运行期配置 > 模板 viewBox 中心
5. 组嵌套（外→内）：平移到锚点 → 缩放+中心偏移 → 原根变换 → 路径
6. 新组追加为模板根元素的最后一个子元素，模板原有元素不做任何改写

测试要点：
- test_center_maps_to_anchor: 设计稿中心映射到锚点
- test_inherited_transform_preserved: 原根变换保留
- test_template_untouched: 模板原元素保持不变
- test_malformed_design / test_malformed_template: 结构错误
"""

from __future__ import annotations

import logging
from pathlib import Path
from xml.etree import ElementTree as ET

from ..config import get_config
from ..geometry import CSS_DPI, CompositePlacement, mm_to_pixels, parse_length_mm
from ..interfaces import ITemplateCompositor, MalformedTemplateError, ValidationError
from ..models import CompositeResult, VectorDocument
from ..svg import build_design_group, local_name, parse_svg_tree, read_vector_document, svg_tag

logger = logging.getLogger(__name__)

DESIGN_GROUP_ID = "ai-design"


class TemplateCompositor(ITemplateCompositor):
    """固定模板合成器"""

    def __init__(
        self,
        anchor: tuple[float, float] | None = None,
        scale: float | None = None,
        default_design_mm: float | None = None,
    ):
        cfg = get_config().compositor
        if anchor is None and cfg.anchor_x is not None and cfg.anchor_y is not None:
            anchor = (cfg.anchor_x, cfg.anchor_y)
        self.default_anchor = anchor
        self.default_scale = scale or cfg.scale
        self.default_design_mm = default_design_mm or cfg.default_design_mm

    def composite(
        self,
        design_path: Path,
        template_path: Path,
        output_path: Path,
        anchor: tuple[float, float] | None = None,
        scale: float | None = None,
    ) -> CompositeResult:
        """合成设计稿与模板"""
        design = read_vector_document(design_path)
        tree = self._load_template(template_path)
        root = tree.getroot()

        placement = self.compute_placement(design, root, anchor=anchor, scale=scale)
        group = self.build_placed_group(design, placement)
        ET.indent(group, space="  ", level=1)

        root.append(ET.Comment(" AI Generated Design "))
        root.append(group)

        output_path.parent.mkdir(parents=True, exist_ok=True)
        tree.write(str(output_path), encoding="utf-8", xml_declaration=True)

        logger.info(
            f"合成完成: {output_path.name} anchor=({placement.anchor_x}, {placement.anchor_y}) "
            f"scale={placement.scale} paths={design.path_count}"
        )
        return CompositeResult(
            output_path=output_path,
            placement=placement,
            path_count=design.path_count,
            layer_count=len(design.layers),
        )

    def compute_placement(
        self,
        design: VectorDocument,
        template_root: ET.Element,
        anchor: tuple[float, float] | None = None,
        scale: float | None = None,
    ) -> CompositePlacement:
        """计算放置参数"""
        width, height = design.user_size(self.default_design_mm)
        min_x, min_y = design.user_origin()
        resolved_anchor = anchor or self.default_anchor or template_center(template_root)
        try:
            return CompositePlacement.for_design(
                width,
                height,
                anchor=resolved_anchor,
                scale=scale if scale is not None else self.default_scale,
                min_x=min_x,
                min_y=min_y,
            )
        except ValueError as e:
            raise ValidationError(f"放置参数错误: {e}") from e

    @staticmethod
    def build_placed_group(design: VectorDocument, placement: CompositePlacement) -> ET.Element:
        """外→内：锚点平移 / 缩放+偏移 / 设计稿组"""
        outer = ET.Element(
            svg_tag("g"), {"id": DESIGN_GROUP_ID, "transform": placement.svg_anchor()}
        )
        inner = ET.SubElement(outer, svg_tag("g"), {"transform": placement.svg_scale_offset()})
        inner.append(build_design_group(design))
        return outer

    @staticmethod
    def _load_template(template_path: Path) -> ET.ElementTree:
        if not template_path.exists():
            raise MalformedTemplateError(f"模板不存在: {template_path}")
        try:
            tree = parse_svg_tree(template_path)
        except ET.ParseError as e:
            raise MalformedTemplateError(f"模板无法解析: {template_path}: {e}") from e
        if local_name(tree.getroot().tag) != "svg":
            raise MalformedTemplateError(f"模板根元素不是<svg>: {template_path}")
        return tree


def template_center(root: ET.Element) -> tuple[float, float]:
    """模板用户坐标系中心（viewBox 优先，其次 width/height）"""
    view_box = root.get("viewBox")
    if view_box:
        try:
            min_x, min_y, width, height = (float(v) for v in view_box.replace(",", " ").split())
        except ValueError as e:
            raise MalformedTemplateError(f"模板 viewBox 格式错误: {view_box!r}") from e
        return (min_x + width / 2, min_y + height / 2)

    width_mm = parse_length_mm(root.get("width"))
    height_mm = parse_length_mm(root.get("height"))
    if width_mm is None or height_mm is None:
        raise MalformedTemplateError("模板缺少 viewBox 与 width/height，无法确定锚点")
    return (mm_to_pixels(width_mm, CSS_DPI) / 2, mm_to_pixels(height_mm, CSS_DPI) / 2)

"""
手机壳拼接器 - 按机型程序化生成外轮廓并居中放置设计稿

与模板合成器同一居中原则，模板来源不同：
- 外轮廓/摄像头开孔/切割线由机型尺寸（mm）计算生成
- 文档用户单位即 mm，设计稿按物理尺寸 × design_scale 放置在外轮廓几何中心

测试要点：
- test_stitch_unknown_model: 未知机型 → ConfigurationError
- test_stitch_design_centered: 设计稿中心 = 外轮廓中心
"""

from __future__ import annotations

import logging
from pathlib import Path
from xml.etree import ElementTree as ET

from ..config import ProfileRegistry, get_config, load_profiles
from ..geometry import CompositePlacement, format_number
from ..interfaces import IPhoneCaseStitcher, ValidationError
from ..models import CompositeResult, PhoneCaseProfile
from ..svg import build_design_group, read_vector_document, svg_tag, write_element

logger = logging.getLogger(__name__)

CASE_CORNER_RADIUS_MM = 8.0
CAMERA_OFFSET_MM = 5.0
CAMERA_SIZE_MM = 20.0
CAMERA_CORNER_RADIUS_MM = 3.0

OUTLINE_COLOR = "#0000FF"
GUIDE_COLOR = "#00FF00"
CUT_COLOR = "#FF0000"


class PhoneCaseStitcher(IPhoneCaseStitcher):
    """程序化手机壳拼接器"""

    def __init__(
        self,
        profiles: ProfileRegistry | None = None,
        margin_mm: float | None = None,
        default_design_mm: float | None = None,
    ):
        cfg = get_config().compositor
        self.profiles = profiles or load_profiles()
        self.margin_mm = cfg.stitch_margin_mm if margin_mm is None else margin_mm
        self.default_design_mm = default_design_mm or cfg.default_design_mm

    def stitch(
        self,
        phone_model: str,
        design_path: Path,
        output_path: Path,
        design_scale: float = 1.0,
    ) -> CompositeResult:
        """生成手机壳SVG"""
        if design_scale <= 0:
            raise ValidationError(f"design_scale 必须为正数: {design_scale}")

        profile = self.profiles.get(phone_model)
        design = read_vector_document(design_path)

        margin = self.margin_mm
        total_width = profile.width_mm + margin * 2
        total_height = profile.height_mm + margin * 2

        root = ET.Element(
            svg_tag("svg"),
            {
                "version": "1.1",
                "width": f"{format_number(total_width)}mm",
                "height": f"{format_number(total_height)}mm",
                "viewBox": f"0 0 {format_number(total_width)} {format_number(total_height)}",
            },
        )
        root.append(self._case_outline(profile))

        # 设计稿用户单位 → mm
        user_width, user_height = design.user_size(self.default_design_mm)
        physical_width, physical_height = design.physical_size_mm(self.default_design_mm)
        min_x, min_y = design.user_origin()
        center = (margin + profile.width_mm / 2, margin + profile.height_mm / 2)
        placement = CompositePlacement.for_design(
            user_width,
            user_height,
            anchor=center,
            scale=physical_width / user_width * design_scale,
            min_x=min_x,
            min_y=min_y,
        )

        design_group = ET.SubElement(
            root, svg_tag("g"), {"id": "design", "transform": placement.svg_anchor()}
        )
        guide_width = physical_width * design_scale
        guide_height = physical_height * design_scale
        ET.SubElement(
            design_group,
            svg_tag("rect"),
            {
                "x": format_number(-guide_width / 2),
                "y": format_number(-guide_height / 2),
                "width": format_number(guide_width),
                "height": format_number(guide_height),
                "fill": "none",
                "stroke": GUIDE_COLOR,
                "stroke-width": "0.1",
                "stroke-dasharray": "2,2",
            },
        )
        inner = ET.SubElement(
            design_group, svg_tag("g"), {"transform": placement.svg_scale_offset()}
        )
        inner.append(build_design_group(design))

        root.append(self._cut_lines(profile))
        write_element(root, output_path)

        logger.info(
            f"手机壳拼接完成: {profile.name} {format_number(total_width)}x"
            f"{format_number(total_height)}mm 设计稿中心=({format_number(center[0])}, "
            f"{format_number(center[1])})mm"
        )
        return CompositeResult(
            output_path=output_path,
            placement=placement,
            path_count=design.path_count,
            layer_count=len(design.layers),
        )

    def _case_outline(self, profile: PhoneCaseProfile) -> ET.Element:
        margin = self.margin_mm
        group = ET.Element(svg_tag("g"), {"id": "phone-case"})
        ET.SubElement(
            group,
            svg_tag("rect"),
            self._rect_attrs(
                margin, margin, profile.width_mm, profile.height_mm,
                CASE_CORNER_RADIUS_MM, OUTLINE_COLOR, "0.5",
            ),
        )
        # 摄像头开孔（通用位置）
        ET.SubElement(
            group,
            svg_tag("rect"),
            self._rect_attrs(
                margin + CAMERA_OFFSET_MM, margin + CAMERA_OFFSET_MM,
                CAMERA_SIZE_MM, CAMERA_SIZE_MM,
                CAMERA_CORNER_RADIUS_MM, OUTLINE_COLOR, "0.5",
            ),
        )
        return group

    def _cut_lines(self, profile: PhoneCaseProfile) -> ET.Element:
        margin = self.margin_mm
        group = ET.Element(svg_tag("g"), {"id": "cut-lines"})
        ET.SubElement(
            group,
            svg_tag("rect"),
            self._rect_attrs(
                margin, margin, profile.width_mm, profile.height_mm,
                CASE_CORNER_RADIUS_MM, CUT_COLOR, "0.1",
            ),
        )
        return group

    @staticmethod
    def _rect_attrs(
        x: float,
        y: float,
        width: float,
        height: float,
        radius: float,
        stroke: str,
        stroke_width: str,
    ) -> dict[str, str]:
        return {
            "x": format_number(x),
            "y": format_number(y),
            "width": format_number(width),
            "height": format_number(height),
            "rx": format_number(radius),
            "ry": format_number(radius),
            "fill": "none",
            "stroke": stroke,
            "stroke-width": stroke_width,
        }

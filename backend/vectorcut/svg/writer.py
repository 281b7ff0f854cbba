"""
SVG 写出器 - VectorDocument → SVG

职责：
1. 把矢量文档写成独立SVG（物理尺寸 + viewBox + 根组 + 路径层）
2. 生成可嵌入其他文档的设计稿组（合成器使用）
"""

from __future__ import annotations

from pathlib import Path
from xml.etree import ElementTree as ET

from ..geometry import format_number
from ..models import PathLayer, VectorDocument
from .reader import SVG_NS

ET.register_namespace("", SVG_NS)


def svg_tag(name: str) -> str:
    return f"{{{SVG_NS}}}{name}"


def build_design_group(doc: VectorDocument, attributes: dict[str, str] | None = None) -> ET.Element:
    """
    设计稿组：根变换 + 根属性 + 各路径层（顺序不变）
    """
    attrs = dict(attributes or {})
    attrs.update(doc.root_attributes)
    root_transform = doc.root_transform.to_svg()
    if root_transform:
        attrs["transform"] = root_transform

    group = ET.Element(svg_tag("g"), attrs)
    for layer in doc.layers:
        _append_layer(group, layer)
    return group


def _append_layer(parent: ET.Element, layer: PathLayer) -> None:
    transform = layer.transform.to_svg()
    if not layer.attributes and not transform:
        target = parent
    else:
        attrs = dict(layer.attributes)
        if transform:
            attrs["transform"] = transform
        target = ET.SubElement(parent, svg_tag("g"), attrs)

    for path in layer.paths:
        ET.SubElement(target, svg_tag("path"), {"d": path.d, **path.attributes})


def document_to_element(doc: VectorDocument) -> ET.Element:
    """矢量文档 → <svg> 根元素"""
    attrs = {"version": "1.1"}
    if doc.width_mm is not None and doc.height_mm is not None:
        attrs["width"] = f"{format_number(doc.width_mm)}mm"
        attrs["height"] = f"{format_number(doc.height_mm)}mm"
    if doc.view_box is not None:
        attrs["viewBox"] = doc.view_box.to_svg()

    root = ET.Element(svg_tag("svg"), attrs)
    root.append(build_design_group(doc))
    return root


def write_element(root: ET.Element, output_path: Path, indent: bool = True) -> Path:
    """写出SVG文件（UTF-8 + XML声明）"""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    tree = ET.ElementTree(root)
    if indent:
        ET.indent(tree, space="  ")
    tree.write(str(output_path), encoding="utf-8", xml_declaration=True)
    return output_path


def write_vector_document(doc: VectorDocument, output_path: Path) -> Path:
    """写出矢量文档"""
    return write_element(document_to_element(doc), output_path)

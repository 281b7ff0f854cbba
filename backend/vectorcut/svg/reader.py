"""
SVG 读取器 - 结构化解析为 VectorDocument

职责：
1. 解析SVG（保留注释与命名空间前缀，供模板原样写回）
2. 外层 <g> 为唯一图形子元素时捕获其 transform 作为根变换；多个顶层组各为一层
3. 按渲染顺序提取路径层，路径属性原样保留

测试要点：
- test_read_potrace_output: 描摹器输出（根变换+单层路径）
- test_read_color_layers: 分色输出（每色一层）
- test_sibling_groups_kept: 多个顶层组与直属路径全部保留
- test_no_paths_raises: 无路径 → MalformedDesignError
"""

from __future__ import annotations

import logging
from pathlib import Path
from xml.etree import ElementTree as ET

from ..geometry import Transform, parse_length_mm, parse_transform
from ..interfaces import MalformedDesignError
from ..models import PathElement, PathLayer, VectorDocument, ViewBox

logger = logging.getLogger(__name__)

SVG_NS = "http://www.w3.org/2000/svg"

# 分组时不向下继承的属性
_NON_INHERITED = {"id", "transform", "class"}

# 参与分层的顶层元素（metadata/defs/title 等不计）
_SHAPE_TAGS = {"g", "path"}


def local_name(tag: str) -> str:
    """去掉命名空间前缀"""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _register_namespaces(path: Path) -> None:
    """注册源文件中的命名空间前缀，写回时保持原前缀"""
    for _, (prefix, uri) in ET.iterparse(str(path), events=("start-ns",)):
        if prefix.startswith("ns") and prefix[2:].isdigit():
            continue
        try:
            ET.register_namespace(prefix, uri)
        except ValueError:
            logger.debug(f"跳过命名空间前缀: {prefix}")


def parse_svg_tree(path: Path) -> ET.ElementTree:
    """
    解析SVG文件为元素树（保留注释）

    Raises:
        ET.ParseError: XML结构错误
    """
    _register_namespaces(path)
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
    return ET.parse(str(path), parser=parser)


def read_vector_document(path: Path) -> VectorDocument:
    """
    读取SVG为矢量文档

    Raises:
        MalformedDesignError: 文件缺失/无法解析/无可提取路径
    """
    if not path.exists():
        raise MalformedDesignError(f"设计稿不存在: {path}")
    try:
        tree = parse_svg_tree(path)
    except ET.ParseError as e:
        raise MalformedDesignError(f"设计稿无法解析: {path}: {e}") from e

    return parse_vector_document(tree.getroot(), source_path=path)


def parse_vector_document(root: ET.Element, source_path: Path | None = None) -> VectorDocument:
    """从根元素构建矢量文档"""
    if local_name(root.tag) != "svg":
        raise MalformedDesignError(f"根元素不是<svg>: {local_name(root.tag)}")

    try:
        doc = VectorDocument(
            width_mm=parse_length_mm(root.get("width")),
            height_mm=parse_length_mm(root.get("height")),
            view_box=_parse_view_box(root.get("viewBox")),
            source_path=source_path,
        )

        # 外层组是唯一的图形子元素时（描摹器输出）才作为根变换；
        # 否则每个顶层 <g> 各为一层，直属路径按顺序归层
        shapes = [child for child in root if local_name(child.tag) in _SHAPE_TAGS]
        if len(shapes) == 1 and local_name(shapes[0].tag) == "g":
            top_group = shapes[0]
            doc.root_transform = parse_transform(top_group.get("transform"))
            doc.root_attributes = {
                k: v for k, v in top_group.attrib.items() if k != "transform"
            }
            doc.layers = _split_layers(top_group)
        else:
            doc.layers = _split_layers(root)
    except ValueError as e:
        raise MalformedDesignError(f"设计稿属性错误: {e}") from e

    if doc.path_count == 0:
        raise MalformedDesignError(f"设计稿中没有可提取的路径: {source_path or '<memory>'}")

    logger.debug(
        f"读取设计稿: layers={len(doc.layers)} paths={doc.path_count} "
        f"root_transform={doc.root_transform.to_svg() or 'identity'}"
    )
    return doc


def _parse_view_box(text: str | None) -> ViewBox | None:
    if not text:
        return None
    values = [float(v) for v in text.replace(",", " ").split()]
    if len(values) != 4:
        raise ValueError(f"viewBox 格式错误: {text!r}")
    min_x, min_y, width, height = values
    if width <= 0 or height <= 0:
        raise ValueError(f"viewBox 尺寸必须为正数: {text!r}")
    return ViewBox(min_x=min_x, min_y=min_y, width=width, height=height)


def _split_layers(container: ET.Element) -> list[PathLayer]:
    """
    按子元素顺序切分路径层：
    - 连续的直属 <path> 归入同一个无属性层
    - 每个子 <g> 为一层（深层嵌套折叠进路径的 transform）
    """
    layers: list[PathLayer] = []
    direct: PathLayer | None = None

    for child in container:
        tag = local_name(child.tag)
        if tag == "path":
            element = _path_element(child, Transform(), {})
            if element is None:
                continue
            if direct is None:
                direct = PathLayer()
                layers.append(direct)
            direct.paths.append(element)
        elif tag == "g":
            direct = None
            layers.append(
                PathLayer(
                    attributes={k: v for k, v in child.attrib.items() if k != "transform"},
                    transform=parse_transform(child.get("transform")),
                    paths=_collect_paths(child, Transform(), {}),
                )
            )
    return layers


def _collect_paths(
    element: ET.Element,
    inherited: Transform,
    inherited_attrs: dict[str, str],
) -> list[PathElement]:
    paths: list[PathElement] = []
    for child in element:
        tag = local_name(child.tag)
        if tag == "path":
            path = _path_element(child, inherited, inherited_attrs)
            if path is not None:
                paths.append(path)
        elif tag == "g":
            attrs = dict(inherited_attrs)
            attrs.update({k: v for k, v in child.attrib.items() if k not in _NON_INHERITED})
            paths.extend(
                _collect_paths(child, inherited @ parse_transform(child.get("transform")), attrs)
            )
    return paths


def _path_element(
    element: ET.Element,
    inherited: Transform,
    inherited_attrs: dict[str, str],
) -> PathElement | None:
    d = element.get("d")
    if not d or not d.strip():
        logger.warning("忽略缺少 d 属性的路径")
        return None

    attributes = dict(inherited_attrs)
    attributes.update({k: v for k, v in element.attrib.items() if k != "d"})
    if not inherited.is_identity:
        combined = inherited @ parse_transform(element.get("transform"))
        attributes["transform"] = combined.to_svg()
    return PathElement(d=d, attributes=attributes)

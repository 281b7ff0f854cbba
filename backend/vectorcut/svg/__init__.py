"""
SVG 模块 - 结构化读写（替代字符串匹配）

子模块：
- reader: SVG → VectorDocument（捕获根变换，保留路径属性）
- writer: VectorDocument → SVG / 可嵌入的设计稿组
"""

from .reader import (
    SVG_NS,
    local_name,
    parse_svg_tree,
    parse_vector_document,
    read_vector_document,
)
from .writer import (
    build_design_group,
    document_to_element,
    svg_tag,
    write_element,
    write_vector_document,
)

__all__ = [
    "SVG_NS",
    "local_name",
    "parse_svg_tree",
    "parse_vector_document",
    "read_vector_document",
    "build_design_group",
    "document_to_element",
    "svg_tag",
    "write_element",
    "write_vector_document",
]

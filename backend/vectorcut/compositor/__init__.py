"""
合成模块 - 设计稿与手机壳模板合成

子模块：
- template: 固定模板合成（锚点 + 缩放 + 中心偏移）
- stitcher: 按机型程序化生成外轮廓并居中
"""

from .stitcher import PhoneCaseStitcher
from .template import DESIGN_GROUP_ID, TemplateCompositor, template_center

__all__ = [
    "TemplateCompositor",
    "PhoneCaseStitcher",
    "DESIGN_GROUP_ID",
    "template_center",
]

"""
外部服务 - 图像生成API客户端
"""

from .image_generator import ImageGenerator, enhance_prompt_for_line_art

__all__ = [
    "ImageGenerator",
    "enhance_prompt_for_line_art",
]

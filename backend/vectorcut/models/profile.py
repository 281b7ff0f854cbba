"""
机型尺寸模型 - 静态参考数据（加载一次，只读）
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class PhoneCaseProfile(BaseModel):
    """手机壳物理尺寸"""
    key: str
    name: str
    width_mm: float = Field(..., gt=0)
    height_mm: float = Field(..., gt=0)

    model_config = {"frozen": True}

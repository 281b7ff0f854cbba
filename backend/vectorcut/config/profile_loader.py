"""
机型尺寸表加载器 - 读取 phone_cases.yaml

职责：
- 解析YAML并提供类型安全访问
- 机型键 → 手机壳物理宽高（mm）
- 缓存加载结果（只加载一次，之后不可变）

使用方式：
    profiles = ProfileLoader.load()
    iphone = profiles.get("iphone14pro")
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..interfaces import ConfigurationError, IProfileRegistry
from ..models import PhoneCaseProfile

DEFAULT_PROFILES_PATH = Path(__file__).resolve().parent / "phone_cases.yaml"


class ProfileRegistry(IProfileRegistry):
    """机型尺寸表（只读）"""

    def __init__(self, profiles: Mapping[str, PhoneCaseProfile]):
        self._profiles = MappingProxyType(dict(profiles))

    def get(self, model_key: str) -> PhoneCaseProfile:
        """按机型键查找"""
        profile = self._profiles.get(model_key)
        if profile is None:
            known = ", ".join(sorted(self._profiles))
            raise ConfigurationError(f"未知机型: {model_key}（可选: {known}）")
        return profile

    def keys(self) -> list[str]:
        return list(self._profiles)

    def __contains__(self, model_key: object) -> bool:
        return model_key in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)


class ProfileLoader:
    """机型尺寸表加载器（缓存）"""

    @classmethod
    @lru_cache(maxsize=4)
    def load(cls, profiles_path: str | Path = DEFAULT_PROFILES_PATH) -> ProfileRegistry:
        """加载并缓存机型尺寸表"""
        path = Path(profiles_path)
        if not path.exists():
            raise ConfigurationError(f"机型尺寸表不存在: {path}")

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        raw = data.get("phone_cases", {})
        try:
            profiles = {
                key: PhoneCaseProfile(key=key, **value) for key, value in raw.items()
            }
        except (PydanticValidationError, TypeError) as e:
            raise ConfigurationError(f"机型尺寸表格式错误: {path}: {e}") from e

        return ProfileRegistry(profiles)

    @classmethod
    def reload(cls, profiles_path: str | Path = DEFAULT_PROFILES_PATH) -> ProfileRegistry:
        """强制重新加载（清除缓存）"""
        cls.load.cache_clear()
        return cls.load(profiles_path)


# 便捷函数
def load_profiles(profiles_path: str | Path = DEFAULT_PROFILES_PATH) -> ProfileRegistry:
    """加载机型尺寸表"""
    return ProfileLoader.load(profiles_path)

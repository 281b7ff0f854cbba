"""
配置层 - 加载运行期配置与机型尺寸表

职责：
- 加载 config/runtime.yaml（运行期参数，支持环境变量覆盖）
- 加载 phone_cases.yaml（机型尺寸，静态只读）
- 提供类型安全的配置访问接口
"""

from .profile_loader import ProfileLoader, ProfileRegistry, load_profiles
from .runtime_config import RuntimeConfig, get_config, reload_config, set_config

__all__ = [
    "ProfileLoader",
    "ProfileRegistry",
    "load_profiles",
    "RuntimeConfig",
    "get_config",
    "reload_config",
    "set_config",
]

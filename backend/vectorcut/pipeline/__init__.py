"""
流水线模块 - 任务编排与执行

子模块：
- stages: 流水线各阶段定义与阶段计划
- executor: 流水线执行器（含取消令牌）
- workspace: 任务独占的中间文件命名空间
- job_manager: 任务管理（持久化/并发提交/取消）
"""

from .executor import (
    CancellationToken,
    ConversionPipeline,
    composite_output_path,
    merge_color_layers,
    target_size_pixels,
)
from .job_manager import JobManager
from .stages import CONVERSION_STAGES, PipelineStage, StageEnum, build_stage_plan
from .workspace import JobWorkspace

__all__ = [
    "PipelineStage",
    "StageEnum",
    "CONVERSION_STAGES",
    "build_stage_plan",
    "CancellationToken",
    "ConversionPipeline",
    "JobWorkspace",
    "JobManager",
    "composite_output_path",
    "merge_color_layers",
    "target_size_pixels",
]

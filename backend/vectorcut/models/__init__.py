"""
数据模型层 - 定义系统核心数据结构

所有模块通过这些模型交互，实现解耦：
- ConversionJob: 转换任务状态与生命周期
- VectorDocument: SVG 的结构化表示（根变换 + 路径层）
- PhoneCaseProfile: 机型尺寸（静态只读）
- DxfSummary/CompositeResult/ProgressEvent: 阶段结果与进度事件
"""

from .artifacts import CompositeResult, DxfSummary, ProgressEvent, RasterInfo
from .job import (
    CompositeMode,
    CompositeRequest,
    ConversionJob,
    ConversionOptions,
    JobArtifacts,
    JobProgress,
    JobStatus,
    PipelineState,
    SourceKind,
)
from .profile import PhoneCaseProfile
from .vector_doc import DEFAULT_DESIGN_MM, PathElement, PathLayer, VectorDocument, ViewBox

__all__ = [
    "ConversionJob",
    "ConversionOptions",
    "CompositeMode",
    "CompositeRequest",
    "JobArtifacts",
    "JobProgress",
    "JobStatus",
    "PipelineState",
    "SourceKind",
    "VectorDocument",
    "PathLayer",
    "PathElement",
    "ViewBox",
    "DEFAULT_DESIGN_MM",
    "PhoneCaseProfile",
    "RasterInfo",
    "DxfSummary",
    "CompositeResult",
    "ProgressEvent",
]

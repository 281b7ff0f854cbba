"""
流水线阶段定义

职责：
1. 定义各阶段的名称、状态机状态、对外进度步骤与进度区间
2. 按任务输入裁剪阶段计划（提示词 → 生成；矢量源 → 跳过预处理/描摹；无合成请求 → 跳过合成）

对外进度步骤（外层SSE的 step 字段）：
    1 生成  2 矢量化（预处理+描摹）  3 合成  4 导出

测试要点：
- test_plan_raster: 光栅源完整阶段
- test_plan_vector_source: 矢量源跳过预处理/描摹
- test_plan_prompt: 提示词任务先生成
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ..models import PipelineState, SourceKind

if TYPE_CHECKING:
    from ..models import ConversionJob


class StageEnum(str, Enum):
    """流水线阶段枚举"""
    GENERATE = "GENERATE"
    PREPROCESS = "PREPROCESS"
    VECTORIZE = "VECTORIZE"
    COMPOSITE = "COMPOSITE"
    EXPORT = "EXPORT"


@dataclass(frozen=True)
class PipelineStage:
    """流水线阶段"""
    name: str
    state: PipelineState
    step: int            # 对外进度步骤（1-4）
    progress_start: int  # 进度起点（0-100）
    progress_end: int    # 进度终点
    label: str = ""


# 转换流水线各阶段配置（按执行顺序）
CONVERSION_STAGES: list[PipelineStage] = [
    PipelineStage(StageEnum.GENERATE.value, PipelineState.GENERATING, 1, 0, 20, "生成图像"),
    PipelineStage(StageEnum.PREPROCESS.value, PipelineState.PREPROCESSING, 2, 20, 40, "预处理图像"),
    PipelineStage(StageEnum.VECTORIZE.value, PipelineState.VECTORIZING, 2, 40, 65, "转换为SVG"),
    PipelineStage(StageEnum.COMPOSITE.value, PipelineState.COMPOSITING, 3, 65, 80, "合成手机壳"),
    PipelineStage(StageEnum.EXPORT.value, PipelineState.EXPORTING, 4, 80, 100, "导出DXF"),
]


def build_stage_plan(job: ConversionJob) -> list[PipelineStage]:
    """按任务输入裁剪阶段"""
    skipped: set[str] = set()
    if not job.prompt:
        skipped.add(StageEnum.GENERATE.value)
    if job.source_kind == SourceKind.VECTOR and not job.prompt:
        skipped.update({StageEnum.PREPROCESS.value, StageEnum.VECTORIZE.value})
    if job.composite is None:
        skipped.add(StageEnum.COMPOSITE.value)
    return [stage for stage in CONVERSION_STAGES if stage.name not in skipped]


def completes_step(plan: list[PipelineStage], index: int) -> bool:
    """该阶段是否为其进度步骤的最后一个阶段"""
    if index == len(plan) - 1:
        return True
    return plan[index + 1].step != plan[index].step

"""
任务模型 - 定义转换任务状态与生命周期

一个 ConversionJob 对应一次"源图 → SVG/DXF"请求；
状态只由流水线修改，SUCCEEDED/FAILED/CANCELLED 为终态。
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from .artifacts import DxfSummary

TURN_POLICIES = ("black", "white", "left", "right", "minority", "majority", "random")
VECTOR_SUFFIXES = (".svg",)


class JobStatus(str, Enum):
    """任务状态枚举"""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PipelineState(str, Enum):
    """流水线状态机"""
    PENDING = "pending"
    GENERATING = "generating"
    PREPROCESSING = "preprocessing"
    VECTORIZING = "vectorizing"
    COMPOSITING = "compositing"
    EXPORTING = "exporting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


class SourceKind(str, Enum):
    """源文件类型（决定流水线分支）"""
    RASTER = "raster"
    VECTOR = "vector"

    @classmethod
    def infer(cls, path: Path) -> SourceKind:
        """按后缀推断"""
        if path.suffix.lower() in VECTOR_SUFFIXES:
            return cls.VECTOR
        return cls.RASTER


class CompositeMode(str, Enum):
    """合成模式"""
    TEMPLATE = "template"   # 固定模板（iPhone 12 背板）
    STITCH = "stitch"       # 按机型程序化生成外轮廓


class ConversionOptions(BaseModel):
    """转换选项"""
    threshold: float = Field(50.0, ge=0, le=100, description="二值化阈值(%)")
    colors: int = Field(8, ge=1, description="分色数量")
    preserve_color: bool = False
    keep_intermediates: bool = False

    target_size_mm: float = Field(60.0, gt=0, description="输出物理边长(mm)")
    oversample: int = Field(4, ge=1, description="预处理超采样倍数")
    turd_size: int = Field(2, ge=0, description="potrace 去噪面积")
    turn_policy: str = "minority"
    alpha_max: float = Field(1.0, ge=0, le=1.3334, description="potrace 拐角阈值")
    despeckle: bool = Field(True, description="预处理去噪点（-despeckle）")
    smooth: bool = Field(True, description="预处理平滑（-median 2）")
    image_size: str | None = Field(None, description="图像生成尺寸（仅提示词任务）")

    @field_validator("turn_policy")
    @classmethod
    def _check_turn_policy(cls, value: str) -> str:
        if value not in TURN_POLICIES:
            raise ValueError(f"turn_policy 必须为 {TURN_POLICIES} 之一")
        return value


class CompositeRequest(BaseModel):
    """合成请求"""
    mode: CompositeMode = CompositeMode.TEMPLATE
    template_path: Path | None = None
    phone_model: str | None = None
    anchor_x: float | None = None
    anchor_y: float | None = None
    scale: float | None = Field(None, gt=0)
    design_scale: float = Field(1.0, gt=0)

    @model_validator(mode="after")
    def _check_mode(self) -> CompositeRequest:
        if self.mode == CompositeMode.STITCH and not self.phone_model:
            raise ValueError("stitch 模式需要 phone_model")
        if (self.anchor_x is None) != (self.anchor_y is None):
            raise ValueError("anchor_x/anchor_y 必须同时给出")
        return self

    @property
    def anchor(self) -> tuple[float, float] | None:
        if self.anchor_x is None or self.anchor_y is None:
            return None
        return (self.anchor_x, self.anchor_y)


class JobArtifacts(BaseModel):
    """任务产物路径"""
    image_path: Path | None = None
    svg_path: Path | None = None
    dxf_path: Path | None = None
    composite_svg_path: Path | None = None
    composite_dxf_path: Path | None = None
    dxf_summary: DxfSummary | None = None
    composite_dxf_summary: DxfSummary | None = None


class JobProgress(BaseModel):
    """任务进度"""
    stage: PipelineState = PipelineState.PENDING
    percent: int = 0
    message: str = ""


class ConversionJob(BaseModel):
    """转换任务实体"""
    job_id: str = Field(..., description="UUID")

    # 输入
    source_path: Path | None = None
    prompt: str | None = None
    source_kind: SourceKind | None = None
    output_path: Path
    options: ConversionOptions = Field(default_factory=ConversionOptions)
    composite: CompositeRequest | None = None

    # 中间产物（任务独占，结束时清理）
    intermediate_artifacts: list[Path] = Field(default_factory=list)

    # 状态
    status: JobStatus = JobStatus.PENDING
    progress: JobProgress = Field(default_factory=JobProgress)

    # 产物
    artifacts: JobArtifacts = Field(default_factory=JobArtifacts)
    errors: list[str] = Field(default_factory=list, description="错误信息")

    # 时间戳
    created_at: datetime = Field(default_factory=datetime.now)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    # 工作目录（运行时设置）
    work_dir: Path | None = None

    model_config = {"arbitrary_types_allowed": True}

    @model_validator(mode="after")
    def _check_source(self) -> ConversionJob:
        if self.source_path is None and not self.prompt:
            raise ValueError("source_path 与 prompt 至少给出一个")
        if self.source_kind is None and self.source_path is not None:
            self.source_kind = SourceKind.infer(self.source_path)
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELLED)

    @property
    def short_id(self) -> str:
        return self.job_id.split("-")[0]

    def mark_running(self) -> None:
        """标记为运行中"""
        self.status = JobStatus.RUNNING
        self.started_at = datetime.now()

    def enter_stage(self, state: PipelineState, percent: int | None = None) -> None:
        """进入流水线阶段"""
        self.progress.stage = state
        if percent is not None:
            self.progress.percent = percent

    def mark_succeeded(self) -> None:
        """标记为成功"""
        self.status = JobStatus.SUCCEEDED
        self.progress.stage = PipelineState.SUCCEEDED
        self.finished_at = datetime.now()
        self.progress.percent = 100

    def mark_failed(self, error: str) -> None:
        """标记为失败"""
        self.status = JobStatus.FAILED
        self.progress.stage = PipelineState.FAILED
        self.finished_at = datetime.now()
        self.errors.append(error)

    def mark_cancelled(self) -> None:
        """标记为已取消"""
        self.status = JobStatus.CANCELLED
        self.progress.stage = PipelineState.CANCELLED
        self.finished_at = datetime.now()

    def register_artifact(self, path: Path) -> Path:
        """登记中间产物（按创建顺序）"""
        if path not in self.intermediate_artifacts:
            self.intermediate_artifacts.append(path)
        return path

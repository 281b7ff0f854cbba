"""
模块接口契约 - 定义各模块的抽象接口

设计原则：
1. 模块间通过接口通信，不直接依赖具体实现
2. 每个接口定义清晰的输入输出类型
3. 便于单元测试和mock替换（流水线测试使用假适配器）

使用方式：
    from vectorcut.interfaces import IBitmapTracer

    class MyTracer(IBitmapTracer):
        def vectorize_bitmap(self, input_path, output_path, **kwargs) -> Path:
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import (
        CompositeResult,
        ConversionJob,
        DxfSummary,
        PhoneCaseProfile,
        RasterInfo,
    )


# ============================================================================
# 外部工具适配器接口
# ============================================================================

class IRasterProcessor(ABC):
    """光栅处理器接口 - 缩放/补白/二值化/分色"""

    @abstractmethod
    def probe(self, input_path: Path) -> RasterInfo:
        """读取图像尺寸与色彩空间"""
        ...

    @abstractmethod
    def normalize_raster(
        self,
        input_path: Path,
        output_path: Path,
        target_size_pixels: int,
        threshold_percent: float,
        despeckle: bool = False,
        smooth: bool = False,
    ) -> Path:
        """
        归一化为单色位图

        Args:
            input_path: 源图像
            output_path: 输出PBM路径
            target_size_pixels: 输出边长（正方形，补白而非裁切）
            threshold_percent: 二值化阈值（0-100）

        Returns:
            输出PBM路径

        Raises:
            ValidationError: 参数越界
            ToolExecutionError: 工具执行失败
        """
        ...

    @abstractmethod
    def quantize(
        self,
        input_path: Path,
        output_path: Path,
        colors: int,
        target_size_pixels: int,
    ) -> Path:
        """减色到最多N种颜色（无抖动）"""
        ...

    @abstractmethod
    def palette(self, quantized_path: Path) -> list[str]:
        """读取减色后图像的调色板（#RRGGBB，顺序确定）"""
        ...

    @abstractmethod
    def isolate_color(self, quantized_path: Path, color: str, output_path: Path) -> Path:
        """生成单色掩膜：该颜色→黑，其余→白"""
        ...


class IBitmapTracer(ABC):
    """位图描摹器接口 - 位图 → 路径矢量"""

    @abstractmethod
    def vectorize_bitmap(
        self,
        input_path: Path,
        output_path: Path,
        physical_width_mm: float,
        physical_height_mm: float,
        turd_size: int = 2,
        turn_policy: str = "minority",
        alpha_max: float = 1.0,
    ) -> Path:
        """
        描摹单色位图为SVG

        Args:
            input_path: 单色位图（PBM）
            output_path: 输出SVG路径
            physical_width_mm: 输出物理宽度（mm）
            physical_height_mm: 输出物理高度（mm）

        Returns:
            输出SVG路径
        """
        ...


class IVectorExporter(ABC):
    """矢量导出器接口 - SVG → DXF"""

    @abstractmethod
    def export_to_dxf(self, input_path: Path, output_path: Path) -> DxfSummary:
        """
        导出DXF并回读校验

        Returns:
            DXF摘要（实体数/范围/单位）
        """
        ...


# ============================================================================
# 合成与外部服务接口
# ============================================================================

class ITemplateCompositor(ABC):
    """模板合成器接口 - 设计稿居中合入模板"""

    @abstractmethod
    def composite(
        self,
        design_path: Path,
        template_path: Path,
        output_path: Path,
        anchor: tuple[float, float] | None = None,
        scale: float | None = None,
    ) -> CompositeResult:
        """
        合成设计稿与模板

        Raises:
            MalformedDesignError: 设计稿无可提取路径
            MalformedTemplateError: 模板无法解析
        """
        ...


class IPhoneCaseStitcher(ABC):
    """手机壳拼接器接口 - 按机型生成外轮廓并居中设计稿"""

    @abstractmethod
    def stitch(
        self,
        phone_model: str,
        design_path: Path,
        output_path: Path,
        design_scale: float = 1.0,
    ) -> CompositeResult:
        """生成手机壳SVG"""
        ...


class IProfileRegistry(ABC):
    """机型尺寸表接口"""

    @abstractmethod
    def get(self, model_key: str) -> PhoneCaseProfile:
        """按机型键查找（不存在则 ConfigurationError）"""
        ...


class IImageGenerator(ABC):
    """图像生成服务接口"""

    @abstractmethod
    def generate_image(self, prompt: str, size: str | None = None) -> str:
        """生成图像并返回远程URL"""
        ...

    @abstractmethod
    def download_image(self, url: str, destination: Path) -> Path:
        """下载图像到本地"""
        ...


class IJobManager(ABC):
    """任务管理器接口"""

    @abstractmethod
    def create_job(self, output_path: Path, **kwargs: Any) -> ConversionJob:
        """创建任务"""
        ...

    @abstractmethod
    def get_job(self, job_id: str) -> ConversionJob | None:
        """获取任务"""
        ...

    @abstractmethod
    def update_job(self, job: ConversionJob) -> None:
        """更新任务状态"""
        ...

    @abstractmethod
    def cancel_job(self, job_id: str) -> bool:
        """取消任务"""
        ...


# ============================================================================
# 异常定义
# ============================================================================

class VectorCutError(Exception):
    """基础异常"""
    pass


class ValidationError(VectorCutError):
    """输入参数错误（调用方可见，对应HTTP 400）"""
    pass


class ConfigurationError(VectorCutError):
    """配置错误（如未知机型）"""
    pass


class UpstreamServiceError(VectorCutError):
    """图像生成服务错误"""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def auth_failed(self) -> bool:
        return self.status_code == 401


class ToolExecutionError(VectorCutError):
    """外部工具执行失败（非零退出或缺少输出）"""

    def __init__(
        self,
        stage: str,
        message: str,
        exit_code: int | None = None,
        stderr_excerpt: str = "",
    ):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.exit_code = exit_code
        self.stderr_excerpt = stderr_excerpt


class ToolTimeoutError(ToolExecutionError):
    """外部工具超时"""

    def __init__(self, stage: str, timeout: float):
        super().__init__(stage, f"执行超时（{timeout}s）")
        self.timeout = timeout


class MalformedDesignError(VectorCutError):
    """设计稿结构错误"""
    pass


class MalformedTemplateError(VectorCutError):
    """模板结构错误"""
    pass


class FilesystemError(VectorCutError):
    """文件读写/清理错误"""
    pass


class PipelineCancelledError(VectorCutError):
    """任务在阶段之间被取消"""
    pass

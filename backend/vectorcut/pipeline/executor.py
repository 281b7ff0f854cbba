"""
流水线执行器 - 编排各阶段执行

职责：
1. 按阶段计划顺序执行（同一任务内严格串行，上一阶段输出即下一阶段输入）
2. 分支：矢量源跳过预处理/描摹；单色一次描摹；保色按调色板逐色描摹后合并
3. 阶段之间检查取消令牌
4. 无论成功/失败/取消都清理中间产物（keep_intermediates 除外）
5. 推送阶段进度事件

测试要点：
- test_execute_monochrome: 单色流水线
- test_execute_color_layers: 分色合并（层顺序 = 调色板顺序）
- test_execute_vector_source: 矢量源跳过描摹
- test_cleanup_on_failure / test_cleanup_on_cancel: 清理
- test_progress_events: 进度事件
- test_close_releases_own_client: 关闭自建的图像生成客户端
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from ..adapters import BitmapTracer, DxfExporter, RasterProcessor
from ..compositor import PhoneCaseStitcher, TemplateCompositor
from ..config import get_config
from ..geometry import mm_to_pixels, parse_transform
from ..interfaces import MalformedDesignError, PipelineCancelledError
from ..models import (
    CompositeMode,
    PathElement,
    PathLayer,
    ProgressEvent,
    SourceKind,
    VectorDocument,
)
from ..svg import read_vector_document, write_vector_document
from .stages import PipelineStage, StageEnum, build_stage_plan, completes_step
from .workspace import JobWorkspace

if TYPE_CHECKING:
    from ..config import RuntimeConfig
    from ..interfaces import (
        IBitmapTracer,
        IImageGenerator,
        IPhoneCaseStitcher,
        IRasterProcessor,
        ITemplateCompositor,
        IVectorExporter,
    )
    from ..models import ConversionJob

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]


class CancellationToken:
    """取消令牌（阶段之间检查，不中断正在运行的外部进程）"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def target_size_pixels(target_size_mm: float, render_dpi: float, oversample: int) -> int:
    """预处理边长：物理尺寸按渲染DPI换算后超采样（60mm@96DPI×4 → 907）"""
    return round(mm_to_pixels(target_size_mm, render_dpi) * oversample)


def composite_output_path(output_path: Path, suffix: str) -> Path:
    """合成产物路径：<stem>-phone-case.<suffix>"""
    return output_path.with_name(f"{output_path.stem}-phone-case{suffix}")


class ConversionPipeline:
    """流水线执行器"""

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        raster: IRasterProcessor | None = None,
        tracer: IBitmapTracer | None = None,
        exporter: IVectorExporter | None = None,
        compositor: ITemplateCompositor | None = None,
        stitcher: IPhoneCaseStitcher | None = None,
        generator: IImageGenerator | None = None,
    ):
        self.config = config or get_config()

        # 初始化各模块（图像生成客户端惰性创建）
        self.raster = raster or RasterProcessor()
        self.tracer = tracer or BitmapTracer()
        self.exporter = exporter or DxfExporter()
        self.compositor = compositor or TemplateCompositor()
        self.stitcher = stitcher or PhoneCaseStitcher()
        self._generator = generator
        self._owns_generator = False

    @property
    def generator(self) -> IImageGenerator:
        if self._generator is None:
            from ..services import ImageGenerator

            self._generator = ImageGenerator()
            self._owns_generator = True
        return self._generator

    def close(self) -> None:
        """释放自行创建的图像生成客户端（外部注入的由调用方负责）"""
        if self._owns_generator and self._generator is not None:
            self._generator.close()
            self._generator = None
            self._owns_generator = False

    def execute(
        self,
        job: ConversionJob,
        cancel_token: CancellationToken | None = None,
        progress_cb: ProgressCallback | None = None,
    ) -> ConversionJob:
        """执行流水线"""
        plan = build_stage_plan(job)
        workspace = JobWorkspace(job, self.config)
        context: dict[str, Any] = {}

        job.mark_running()
        logger.info(
            f"[{job.job_id}] 任务开始: {' → '.join(stage.name for stage in plan)}"
        )

        try:
            workspace.prepare()
            for index, stage in enumerate(plan):
                if cancel_token is not None and cancel_token.cancelled:
                    raise PipelineCancelledError(f"任务已取消: {job.job_id}")
                self._execute_stage(job, stage, workspace, context, progress_cb)
                if completes_step(plan, index):
                    self._emit(progress_cb, ProgressEvent(
                        step=stage.step, stage=stage.name, complete=True
                    ))

            job.mark_succeeded()
            logger.info(f"[{job.job_id}] 任务完成: {job.artifacts.dxf_path}")
            return job

        except PipelineCancelledError:
            job.mark_cancelled()
            logger.warning(f"[{job.job_id}] 任务已取消（阶段: {job.progress.stage.value}）")
            raise

        except Exception as e:
            logger.exception(f"流水线执行失败: {job.job_id}")
            job.mark_failed(str(e))
            raise

        finally:
            if job.options.keep_intermediates:
                logger.info(
                    f"[{job.job_id}] 保留中间文件 {len(job.intermediate_artifacts)} 个: "
                    f"{workspace.work_dir}"
                )
            else:
                workspace.cleanup()

    def _execute_stage(
        self,
        job: ConversionJob,
        stage: PipelineStage,
        workspace: JobWorkspace,
        context: dict[str, Any],
        progress_cb: ProgressCallback | None,
    ) -> None:
        """执行单个阶段"""
        job.enter_stage(stage.state, stage.progress_start)
        job.progress.message = stage.label
        logger.info(f"[{job.job_id}] 开始阶段: {stage.name}")
        self._emit(progress_cb, ProgressEvent(
            step=stage.step, stage=stage.name, message=stage.label
        ))

        try:
            if stage.name == StageEnum.GENERATE.value:
                self._stage_generate(job, context)

            elif stage.name == StageEnum.PREPROCESS.value:
                self._stage_preprocess(job, workspace, context)

            elif stage.name == StageEnum.VECTORIZE.value:
                self._stage_vectorize(job, workspace, context)

            elif stage.name == StageEnum.COMPOSITE.value:
                self._stage_composite(job, context)

            elif stage.name == StageEnum.EXPORT.value:
                self._stage_export(job, context)

        except Exception as e:
            logger.error(f"[{job.job_id}] 阶段失败 {stage.name}: {e}")
            raise

        job.progress.percent = stage.progress_end
        logger.info(f"[{job.job_id}] 完成阶段: {stage.name}")

    def _stage_generate(self, job: ConversionJob, context: dict[str, Any]) -> None:
        """提示词 → 图像"""
        image_path = job.output_path.with_suffix(".png")
        url = self.generator.generate_image(job.prompt, size=job.options.image_size)
        self.generator.download_image(url, image_path)

        job.source_path = image_path
        job.source_kind = SourceKind.RASTER
        job.artifacts.image_path = image_path

    def _stage_preprocess(
        self, job: ConversionJob, workspace: JobWorkspace, context: dict[str, Any]
    ) -> None:
        """归一化（单色）或减色分色（保色）"""
        opts = job.options
        source = job.source_path
        size_px = target_size_pixels(
            opts.target_size_mm, self.config.pipeline.render_dpi, opts.oversample
        )

        use_color = opts.preserve_color
        if use_color:
            info = self.raster.probe(source)
            if info.is_grayscale:
                logger.info(f"[{job.job_id}] 源图为灰度（{info.colorspace}），按单色流程处理")
                use_color = False
        context["use_color"] = use_color

        if not use_color:
            bitmap = workspace.temp_path("normalized.pbm")
            self.raster.normalize_raster(
                source,
                bitmap,
                size_px,
                opts.threshold,
                despeckle=opts.despeckle,
                smooth=opts.smooth,
            )
            context["bitmap"] = bitmap
            return

        quantized = workspace.temp_path("quantized.png")
        self.raster.quantize(source, quantized, opts.colors, size_px)
        palette = self.raster.palette(quantized)
        logger.info(f"[{job.job_id}] 调色板 {len(palette)} 色: {', '.join(palette)}")

        masks: list[tuple[str, Path]] = []
        for index, color in enumerate(palette):
            mask = workspace.temp_path(f"mask-{index}.pbm")
            self.raster.isolate_color(quantized, color, mask)
            masks.append((color, mask))
        context["masks"] = masks

    def _stage_vectorize(
        self, job: ConversionJob, workspace: JobWorkspace, context: dict[str, Any]
    ) -> None:
        """描摹为设计稿SVG"""
        opts = job.options
        design_svg = job.output_path.with_suffix(".svg")
        trace_kwargs = {
            "physical_width_mm": opts.target_size_mm,
            "physical_height_mm": opts.target_size_mm,
            "turd_size": opts.turd_size,
            "turn_policy": opts.turn_policy,
            "alpha_max": opts.alpha_max,
        }

        if not context.get("use_color"):
            self.tracer.vectorize_bitmap(context["bitmap"], design_svg, **trace_kwargs)
        else:
            traced: list[tuple[str, VectorDocument]] = []
            for index, (color, mask) in enumerate(context["masks"]):
                layer_svg = workspace.temp_path(f"layer-{index}.svg")
                self.tracer.vectorize_bitmap(mask, layer_svg, **trace_kwargs)
                try:
                    traced.append((color, read_vector_document(layer_svg)))
                except MalformedDesignError:
                    logger.warning(f"[{job.job_id}] 颜色 {color} 无可描摹区域，跳过")
            merged = merge_color_layers(traced, opts.target_size_mm)
            merged.source_path = job.source_path
            write_vector_document(merged, design_svg)
            logger.info(f"[{job.job_id}] 分色合并完成: {len(merged.layers)} 层")

        job.artifacts.svg_path = design_svg

    def _stage_composite(self, job: ConversionJob, context: dict[str, Any]) -> None:
        """合成手机壳"""
        request = job.composite
        design_svg = self._design_svg(job)
        output = composite_output_path(job.output_path, ".svg")

        if request.mode == CompositeMode.STITCH:
            result = self.stitcher.stitch(
                request.phone_model, design_svg, output, design_scale=request.design_scale
            )
        else:
            template = request.template_path or self.config.get_template_path()
            result = self.compositor.composite(
                design_svg, template, output, anchor=request.anchor, scale=request.scale
            )

        context["composite"] = result
        job.artifacts.composite_svg_path = result.output_path

    def _stage_export(self, job: ConversionJob, context: dict[str, Any]) -> None:
        """导出DXF（设计稿 + 合成稿）"""
        design_svg = self._design_svg(job)
        dxf_path = job.output_path.with_suffix(".dxf")
        job.artifacts.dxf_summary = self.exporter.export_to_dxf(design_svg, dxf_path)
        job.artifacts.dxf_path = dxf_path

        if job.artifacts.composite_svg_path is not None:
            composite_dxf = composite_output_path(job.output_path, ".dxf")
            job.artifacts.composite_dxf_summary = self.exporter.export_to_dxf(
                job.artifacts.composite_svg_path, composite_dxf
            )
            job.artifacts.composite_dxf_path = composite_dxf

    @staticmethod
    def _design_svg(job: ConversionJob) -> Path:
        """设计稿SVG：描摹产物，矢量源则为源文件本身"""
        if job.artifacts.svg_path is None:
            job.artifacts.svg_path = job.source_path
        return job.artifacts.svg_path

    @staticmethod
    def _emit(progress_cb: ProgressCallback | None, event: ProgressEvent) -> None:
        if progress_cb is not None:
            progress_cb(event)


def merge_color_layers(
    traced: list[tuple[str, VectorDocument]], size_mm: float
) -> VectorDocument:
    """
    合并逐色描摹结果：每色一个 <g fill=color id=color-i>，顺序同调色板

    各层原根变换下沉为层变换；子层变换折叠进路径 transform。
    """
    if not traced:
        raise MalformedDesignError("分色描摹未得到任何路径")

    layers: list[PathLayer] = []
    for index, (color, doc) in enumerate(traced):
        attributes = {k: v for k, v in doc.root_attributes.items() if k != "fill"}
        attributes.update({"id": f"color-{index}", "fill": color})

        paths: list[PathElement] = []
        for sub in doc.layers:
            for path in sub.paths:
                paths.append(_fold_layer(path, sub))
        layers.append(
            PathLayer(attributes=attributes, transform=doc.root_transform, paths=paths)
        )

    first = traced[0][1]
    return VectorDocument(
        width_mm=first.width_mm if first.width_mm is not None else size_mm,
        height_mm=first.height_mm if first.height_mm is not None else size_mm,
        view_box=first.view_box,
        layers=layers,
    )


def _fold_layer(path: PathElement, layer: PathLayer) -> PathElement:
    """子层属性与变换折叠进路径（颜色由外层决定）"""
    inherited = {
        k: v for k, v in layer.attributes.items() if k not in ("id", "fill", "class")
    }
    if not inherited and layer.transform.is_identity:
        return path

    attributes = {**inherited, **path.attributes}
    if not layer.transform.is_identity:
        combined = layer.transform @ parse_transform(attributes.get("transform"))
        attributes["transform"] = combined.to_svg()
    return PathElement(d=path.d, attributes=attributes)

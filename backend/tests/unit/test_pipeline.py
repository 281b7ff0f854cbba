"""
流水线单元测试（假适配器，不启动外部进程）
"""

from __future__ import annotations

import uuid
from pathlib import Path
from xml.etree import ElementTree as ET

import pytest

from vectorcut.compositor import PhoneCaseStitcher, TemplateCompositor
from vectorcut.config import RuntimeConfig
from vectorcut.interfaces import (
    MalformedDesignError,
    PipelineCancelledError,
    ToolExecutionError,
)
from vectorcut.models import (
    CompositeMode,
    CompositeRequest,
    ConversionJob,
    ConversionOptions,
    JobStatus,
    PipelineState,
    ProgressEvent,
    SourceKind,
)
from vectorcut.pipeline import (
    CancellationToken,
    ConversionPipeline,
    JobWorkspace,
    StageEnum,
    build_stage_plan,
    composite_output_path,
    target_size_pixels,
)
from vectorcut.svg import SVG_NS, read_vector_document


def _job(source: Path | None, output: Path, **kwargs) -> ConversionJob:
    return ConversionJob(job_id=str(uuid.uuid4()), source_path=source, output_path=output, **kwargs)


@pytest.fixture
def pipeline(
    runtime_config: RuntimeConfig, fake_raster, fake_tracer, fake_exporter, fake_generator
) -> ConversionPipeline:
    return ConversionPipeline(
        runtime_config,
        raster=fake_raster,
        tracer=fake_tracer,
        exporter=fake_exporter,
        compositor=TemplateCompositor(),
        stitcher=PhoneCaseStitcher(),
        generator=fake_generator,
    )


@pytest.fixture
def output_dir(temp_dir: Path) -> Path:
    path = temp_dir / "out"
    path.mkdir()
    return path


def _work_files(config: RuntimeConfig, job: ConversionJob) -> list[Path]:
    work_dir = config.get_job_dir(job.job_id) / "work"
    return list(work_dir.iterdir()) if work_dir.exists() else []


class TestStagePlan:
    """阶段计划测试"""

    def test_plan_raster(self, raster_source: Path, output_dir: Path):
        job = _job(raster_source, output_dir / "a.dxf")
        names = [s.name for s in build_stage_plan(job)]
        assert names == ["PREPROCESS", "VECTORIZE", "EXPORT"]

    def test_plan_vector_source(self, design_svg: Path, output_dir: Path):
        """矢量源跳过预处理/描摹"""
        job = _job(design_svg, output_dir / "a.dxf", composite=CompositeRequest())
        names = [s.name for s in build_stage_plan(job)]
        assert names == ["COMPOSITE", "EXPORT"]

    def test_plan_prompt(self, output_dir: Path):
        job = _job(None, output_dir / "a.dxf", prompt="a cat")
        names = [s.name for s in build_stage_plan(job)]
        assert names[0] == StageEnum.GENERATE.value
        assert "VECTORIZE" in names

    def test_target_size(self):
        assert target_size_pixels(60, 96, 4) == 907


class TestConversionPipeline:
    """流水线执行测试"""

    def test_execute_monochrome(self, pipeline, fake_raster, fake_tracer, fake_exporter,
                                raster_source: Path, output_dir: Path, runtime_config):
        """单色：归一化 907px → 描摹 60mm → 导出"""
        job = _job(raster_source, output_dir / "art.dxf")
        pipeline.execute(job)

        assert job.status == JobStatus.SUCCEEDED
        assert job.progress.stage == PipelineState.SUCCEEDED
        normalize = next(c for c in fake_raster.calls if c[0] == "normalize")
        assert normalize[3] == 907
        assert normalize[4] == 50
        assert fake_tracer.calls[0][2:] == (60, 60)
        assert job.artifacts.svg_path == output_dir / "art.svg"
        assert job.artifacts.dxf_path == output_dir / "art.dxf"
        assert fake_exporter.calls == [(output_dir / "art.svg", output_dir / "art.dxf")]
        assert job.artifacts.dxf_summary.entity_count == 2

    def test_execute_color_layers(self, pipeline, fake_raster, fake_tracer,
                                  raster_source: Path, output_dir: Path):
        """保色：每色一层，层顺序 = 调色板顺序"""
        fake_raster.palette_colors = ["#FF0000", "#00FF00", "#0000FF"]
        job = _job(raster_source, output_dir / "art.dxf",
                   options=ConversionOptions(preserve_color=True, colors=3))
        pipeline.execute(job)

        quantize = next(c for c in fake_raster.calls if c[0] == "quantize")
        assert quantize[3] == 3
        assert len(fake_tracer.calls) == 3

        doc = read_vector_document(output_dir / "art.svg")
        assert doc.colors == ["#FF0000", "#00FF00", "#0000FF"]
        assert [layer.attributes["id"] for layer in doc.layers] == ["color-0", "color-1", "color-2"]
        assert doc.width_mm == pytest.approx(60)
        # 每层保留描摹器根变换
        assert doc.layers[0].transform.apply(0, 0) == pytest.approx((0, 170))

    def test_color_deterministic(self, pipeline, fake_raster, raster_source: Path, output_dir: Path):
        """同输入两次运行：层结构一致"""
        fake_raster.palette_colors = ["#112233", "#445566"]
        first = _job(raster_source, output_dir / "a.dxf", options={"preserve_color": True})
        second = _job(raster_source, output_dir / "b.dxf", options={"preserve_color": True})
        pipeline.execute(first)
        pipeline.execute(second)

        doc_a = read_vector_document(output_dir / "a.svg")
        doc_b = read_vector_document(output_dir / "b.svg")
        assert doc_a.colors == doc_b.colors
        assert [p.d for p in doc_a.iter_paths()] == [p.d for p in doc_b.iter_paths()]

    def test_grayscale_falls_back_to_monochrome(self, pipeline, fake_raster, raster_source: Path,
                                                output_dir: Path):
        fake_raster.colorspace = "Gray"
        job = _job(raster_source, output_dir / "a.dxf", options={"preserve_color": True})
        pipeline.execute(job)

        kinds = [c[0] for c in fake_raster.calls]
        assert "normalize" in kinds
        assert "quantize" not in kinds

    def test_execute_vector_source(self, pipeline, fake_raster, fake_tracer, fake_exporter,
                                   design_svg: Path, output_dir: Path):
        """矢量源：跳过预处理/描摹，直接导出"""
        job = _job(design_svg, output_dir / "design.dxf")
        assert job.source_kind == SourceKind.VECTOR
        pipeline.execute(job)

        assert fake_raster.calls == []
        assert fake_tracer.calls == []
        assert fake_exporter.calls == [(design_svg, output_dir / "design.dxf")]

    def test_execute_with_template(self, pipeline, fake_exporter, raster_source: Path, output_dir: Path):
        """合成：设计稿与合成稿都导出DXF"""
        job = _job(raster_source, output_dir / "art.dxf", composite=CompositeRequest())
        pipeline.execute(job)

        composite_svg = output_dir / "art-phone-case.svg"
        assert job.artifacts.composite_svg_path == composite_svg
        assert composite_svg.exists()
        assert job.artifacts.composite_dxf_path == output_dir / "art-phone-case.dxf"
        assert [call[0] for call in fake_exporter.calls] == [output_dir / "art.svg", composite_svg]

    def test_execute_with_stitch(self, pipeline, raster_source: Path, output_dir: Path):
        job = _job(raster_source, output_dir / "art.dxf",
                   composite=CompositeRequest(mode=CompositeMode.STITCH, phone_model="iphone14"))
        pipeline.execute(job)

        root = ET.parse(output_dir / "art-phone-case.svg").getroot()
        assert root.find(f"{{{SVG_NS}}}g").get("id") == "phone-case"

    def test_execute_prompt(self, pipeline, fake_generator, output_dir: Path):
        """提示词：先生成图像，再按光栅流程处理"""
        job = _job(None, output_dir / "ai-generated-1.dxf", prompt="a cat")
        pipeline.execute(job)

        assert fake_generator.prompts == ["a cat"]
        assert job.artifacts.image_path == output_dir / "ai-generated-1.png"
        assert job.source_kind == SourceKind.RASTER
        assert job.status == JobStatus.SUCCEEDED

    def test_progress_events(self, pipeline, raster_source: Path, output_dir: Path):
        """步骤 2（预处理+描摹）只在描摹结束时完成一次"""
        events: list[ProgressEvent] = []
        job = _job(raster_source, output_dir / "art.dxf", composite=CompositeRequest())
        pipeline.execute(job, progress_cb=events.append)

        payloads = [e.to_event() for e in events]
        assert payloads == [
            {"step": 2, "message": "预处理图像", "complete": False},
            {"step": 2, "message": "转换为SVG", "complete": False},
            {"step": 2, "message": "", "complete": True},
            {"step": 3, "message": "合成手机壳", "complete": False},
            {"step": 3, "message": "", "complete": True},
            {"step": 4, "message": "导出DXF", "complete": False},
            {"step": 4, "message": "", "complete": True},
        ]


class TestCleanup:
    """中间产物清理测试"""

    def test_cleanup_on_success(self, pipeline, raster_source: Path, output_dir: Path, runtime_config):
        job = _job(raster_source, output_dir / "art.dxf", options={"preserve_color": True})
        pipeline.execute(job)

        assert job.intermediate_artifacts == []
        assert _work_files(runtime_config, job) == []
        assert (output_dir / "art.svg").exists()

    def test_keep_intermediates(self, pipeline, raster_source: Path, output_dir: Path, runtime_config):
        job = _job(raster_source, output_dir / "art.dxf", options={"keep_intermediates": True})
        pipeline.execute(job)

        assert job.intermediate_artifacts
        assert all(path.exists() for path in job.intermediate_artifacts)

    def test_cleanup_on_failure(self, pipeline, fake_tracer, fake_exporter,
                                raster_source: Path, output_dir: Path, runtime_config):
        """描摹失败：任务失败、错误上抛、中间文件清理"""
        fake_tracer.fail = True
        job = _job(raster_source, output_dir / "art.dxf")
        with pytest.raises(ToolExecutionError):
            pipeline.execute(job)

        assert job.status == JobStatus.FAILED
        assert job.progress.stage == PipelineState.FAILED
        assert "vectorize" in job.errors[0]
        assert _work_files(runtime_config, job) == []
        assert fake_exporter.calls == []

    def test_cleanup_on_cancel(self, pipeline, fake_tracer, raster_source: Path, output_dir: Path,
                               runtime_config):
        """阶段之间取消：任务取消、清理仍执行"""
        token = CancellationToken()

        def _cancel_after_preprocess(event: ProgressEvent) -> None:
            if event.stage == StageEnum.PREPROCESS.value:
                token.cancel()

        job = _job(raster_source, output_dir / "art.dxf")
        with pytest.raises(PipelineCancelledError):
            pipeline.execute(job, cancel_token=token, progress_cb=_cancel_after_preprocess)

        assert job.status == JobStatus.CANCELLED
        assert fake_tracer.calls == []
        assert _work_files(runtime_config, job) == []

    def test_all_layers_empty(self, pipeline, raster_source: Path, output_dir: Path, monkeypatch):
        from vectorcut.pipeline import executor

        def _empty(path):
            raise MalformedDesignError("no paths")

        monkeypatch.setattr(executor, "read_vector_document", _empty)
        job = _job(raster_source, output_dir / "a.dxf", options={"preserve_color": True})
        with pytest.raises(MalformedDesignError):
            pipeline.execute(job)
        assert job.status == JobStatus.FAILED


class TestWorkspace:
    """任务工作区测试"""

    def test_distinct_names_same_basename(self, runtime_config, temp_dir: Path):
        """同名源文件的两个任务：中间文件路径不同"""
        source = temp_dir / "art.png"
        source.write_bytes(b"x")
        job_a = _job(source, temp_dir / "a.dxf")
        job_b = _job(source, temp_dir / "b.dxf")

        path_a = JobWorkspace(job_a, runtime_config).temp_path("normalized.pbm")
        path_b = JobWorkspace(job_b, runtime_config).temp_path("normalized.pbm")
        assert path_a != path_b
        assert path_a.name.startswith(job_a.job_id)
        assert job_a.intermediate_artifacts == [path_a]

    def test_cleanup_failure_logged(self, runtime_config, temp_dir: Path, monkeypatch, caplog):
        """删除失败只记录，不上抛"""
        source = temp_dir / "art.png"
        source.write_bytes(b"x")
        job = _job(source, temp_dir / "a.dxf")
        workspace = JobWorkspace(job, runtime_config)
        workspace.prepare()
        path = workspace.temp_path("mask-0.pbm")
        path.write_bytes(b"x")

        def _deny(self, missing_ok=False):
            raise PermissionError("denied")

        monkeypatch.setattr(Path, "unlink", _deny)
        failures = workspace.cleanup()

        assert len(failures) == 1
        assert job.intermediate_artifacts == [path]
        assert "中间文件删除失败" in caplog.text

    def test_composite_output_path(self):
        assert composite_output_path(Path("/x/art.dxf"), ".svg") == Path("/x/art-phone-case.svg")


class TestGeneratorLifecycle:
    """图像生成客户端生命周期测试"""

    def test_close_releases_own_client(self, runtime_config, fake_raster, fake_tracer, fake_exporter):
        pipeline = ConversionPipeline(
            runtime_config, raster=fake_raster, tracer=fake_tracer, exporter=fake_exporter
        )
        client = pipeline.generator._client
        assert not client.is_closed

        pipeline.close()
        assert client.is_closed
        # 再次访问时重新创建
        assert pipeline.generator._client is not client
        pipeline.close()

    def test_close_keeps_injected_generator(self, pipeline, fake_generator):
        pipeline.close()
        assert pipeline.generator is fake_generator

"""
任务管理器单元测试
"""

from __future__ import annotations

from pathlib import Path

import pytest

from vectorcut.interfaces import (
    PipelineCancelledError,
    ToolExecutionError,
    ValidationError,
)
from vectorcut.models import ConversionOptions, JobStatus
from vectorcut.pipeline import ConversionPipeline, JobManager


@pytest.fixture
def manager(runtime_config, fake_raster, fake_tracer, fake_exporter, fake_generator):
    pipeline = ConversionPipeline(
        runtime_config,
        raster=fake_raster,
        tracer=fake_tracer,
        exporter=fake_exporter,
        generator=fake_generator,
    )
    manager = JobManager(pipeline=pipeline)
    yield manager
    manager.shutdown()


class TestCreateJob:
    """任务创建测试"""

    def test_create_job(self, manager, raster_source: Path, temp_dir: Path, runtime_config):
        job = manager.create_job(temp_dir / "art.dxf", source_path=raster_source)

        assert job.status == JobStatus.PENDING
        assert manager.get_job(job.job_id) is job
        assert (runtime_config.get_job_dir(job.job_id) / "job.json").exists()

    def test_default_options_from_config(self, runtime_config, raster_source: Path, temp_dir: Path):
        """未显式给出的选项取运行期配置"""
        runtime_config.pipeline.threshold = 30
        runtime_config.pipeline.target_size_mm = 80
        manager = JobManager()

        job = manager.create_job(
            temp_dir / "art.dxf",
            source_path=raster_source,
            options=ConversionOptions(threshold=70),
        )
        assert job.options.threshold == 70
        assert job.options.target_size_mm == 80

    def test_preprocess_defaults_from_config(self, runtime_config, raster_source: Path, temp_dir: Path):
        runtime_config.pipeline.smooth = False
        job = JobManager().create_job(temp_dir / "art.dxf", source_path=raster_source)
        assert job.options.despeckle is True
        assert job.options.smooth is False

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"options": {"threshold": 150}},
            {"options": {"colors": 0}},
            {"options": {"turn_policy": "sideways"}},
            {"composite": {"mode": "stitch"}},
        ],
    )
    def test_create_job_invalid(self, manager, raster_source: Path, temp_dir: Path, kwargs):
        with pytest.raises(ValidationError):
            manager.create_job(temp_dir / "art.dxf", source_path=raster_source, **kwargs)

    def test_create_job_missing_source(self, manager, temp_dir: Path):
        with pytest.raises(ValidationError, match="源文件不存在"):
            manager.create_job(temp_dir / "art.dxf", source_path=temp_dir / "nope.png")

    def test_create_job_without_input(self, manager, temp_dir: Path):
        with pytest.raises(ValidationError):
            manager.create_job(temp_dir / "art.dxf")


class TestRunJob:
    """任务执行测试"""

    def test_run(self, manager, raster_source: Path, temp_dir: Path):
        job = manager.create_job(temp_dir / "art.dxf", source_path=raster_source)
        result = manager.run(job.job_id)

        assert result.status == JobStatus.SUCCEEDED
        assert result.artifacts.dxf_path == temp_dir / "art.dxf"

    def test_get_job_from_disk(self, manager, raster_source: Path, temp_dir: Path):
        """新实例从 job.json 恢复任务状态"""
        job = manager.create_job(temp_dir / "art.dxf", source_path=raster_source)
        manager.run(job.job_id)

        loaded = JobManager(pipeline=manager.pipeline).get_job(job.job_id)
        assert loaded is not None
        assert loaded.status == JobStatus.SUCCEEDED
        assert loaded.source_path == raster_source
        assert loaded.artifacts.dxf_summary.entity_count == 2

    def test_run_failure_persisted(self, manager, fake_tracer, raster_source: Path, temp_dir: Path):
        fake_tracer.fail = True
        job = manager.create_job(temp_dir / "art.dxf", source_path=raster_source)

        with pytest.raises(ToolExecutionError):
            manager.run(job.job_id)

        loaded = JobManager(pipeline=manager.pipeline).get_job(job.job_id)
        assert loaded.status == JobStatus.FAILED
        assert loaded.errors

    def test_run_unknown_job(self, manager):
        with pytest.raises(ValidationError):
            manager.run("missing")

    def test_run_finished_job(self, manager, raster_source: Path, temp_dir: Path):
        job = manager.create_job(temp_dir / "art.dxf", source_path=raster_source)
        manager.run(job.job_id)
        with pytest.raises(ValidationError):
            manager.run(job.job_id)

    def test_progress_callback(self, manager, raster_source: Path, temp_dir: Path):
        events = []
        job = manager.create_job(temp_dir / "art.dxf", source_path=raster_source)
        manager.run(job.job_id, progress_cb=events.append)

        assert [e.step for e in events if e.complete] == [2, 4]

    def test_prompt_job(self, manager, fake_generator, temp_dir: Path):
        job = manager.create_job(temp_dir / "ai-generated-1.dxf", prompt="a fox")
        manager.run(job.job_id)

        assert fake_generator.prompts == ["a fox"]
        assert job.artifacts.image_path == temp_dir / "ai-generated-1.png"


class TestConcurrency:
    """并发与取消测试"""

    def test_submit_concurrent(self, manager, fake_raster, temp_dir: Path):
        """同名源文件的并发任务互不干扰"""
        jobs = []
        for index in range(3):
            source_dir = temp_dir / f"batch-{index}"
            source_dir.mkdir()
            source = source_dir / "art.png"
            source.write_bytes(b"x")
            jobs.append(manager.create_job(temp_dir / f"out-{index}" / "art.dxf", source_path=source))

        futures = [manager.submit(job.job_id) for job in jobs]
        results = [future.result(timeout=30) for future in futures]

        assert all(job.status == JobStatus.SUCCEEDED for job in results)
        bitmaps = {call[2] for call in fake_raster.calls if call[0] == "normalize"}
        assert len(bitmaps) == 3
        assert all((temp_dir / f"out-{index}" / "art.svg").exists() for index in range(3))

    def test_submit_failure_in_future(self, manager, fake_tracer, raster_source: Path, temp_dir: Path):
        fake_tracer.fail = True
        job = manager.create_job(temp_dir / "art.dxf", source_path=raster_source)
        future = manager.submit(job.job_id)

        with pytest.raises(ToolExecutionError):
            future.result(timeout=30)
        assert manager.get_job(job.job_id).status == JobStatus.FAILED

    def test_cancel_pending_job(self, manager, fake_raster, raster_source: Path, temp_dir: Path):
        job = manager.create_job(temp_dir / "art.dxf", source_path=raster_source)

        assert manager.cancel_job(job.job_id) is True
        assert job.status == JobStatus.CANCELLED
        with pytest.raises(PipelineCancelledError):
            manager.run(job.job_id)
        assert fake_raster.calls == []
        assert manager.cancel_job(job.job_id) is False

    def test_cancel_unknown_job(self, manager):
        assert manager.cancel_job("missing") is False


class TestListJobs:
    """任务列表测试"""

    def test_list_jobs(self, manager, raster_source: Path, temp_dir: Path):
        jobs = [
            manager.create_job(temp_dir / f"art-{index}.dxf", source_path=raster_source)
            for index in range(3)
        ]
        manager.run(jobs[0].job_id)

        assert len(manager.list_jobs()) == 3
        assert len(manager.list_jobs(limit=2)) == 2
        succeeded = manager.list_jobs(status=JobStatus.SUCCEEDED)
        assert [job.job_id for job in succeeded] == [jobs[0].job_id]
        assert len(manager.list_jobs(status=JobStatus.PENDING)) == 2


class TestShutdown:
    """关闭测试"""

    def test_shutdown_closes_generator_client(self, runtime_config, fake_raster, fake_tracer, fake_exporter):
        pipeline = ConversionPipeline(
            runtime_config, raster=fake_raster, tracer=fake_tracer, exporter=fake_exporter
        )
        manager = JobManager(pipeline=pipeline)
        client = pipeline.generator._client

        manager.shutdown()
        assert client.is_closed

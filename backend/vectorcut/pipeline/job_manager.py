"""
任务管理器 - 任务创建/查询/更新/提交/取消

职责：
1. 创建任务并分配ID（参数校验失败 → ValidationError）
2. 任务状态持久化（storage/jobs/<job_id>/job.json）
3. 并发提交（线程池，大小由 concurrency.max_workers 决定）
4. 取消：置位取消令牌，流水线在阶段之间响应

测试要点：
- test_create_job: 创建任务
- test_create_job_invalid: 参数错误
- test_get_job_from_disk: 从磁盘加载
- test_submit_concurrent: 并发提交
- test_cancel_job: 取消任务
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any

import pydantic

from ..config import get_config
from ..interfaces import (
    FilesystemError,
    IJobManager,
    PipelineCancelledError,
    ValidationError,
)
from ..models import ConversionJob, ConversionOptions, JobStatus, ProgressEvent
from .executor import CancellationToken, ConversionPipeline, ProgressCallback

logger = logging.getLogger(__name__)


class JobManager(IJobManager):
    """任务管理器实现"""

    def __init__(self, pipeline: ConversionPipeline | None = None, max_workers: int | None = None):
        self.config = get_config()
        self.pipeline = pipeline or ConversionPipeline(self.config)
        self.max_workers = max_workers or self.config.concurrency.max_workers

        self._jobs: dict[str, ConversionJob] = {}  # 内存缓存
        self._tokens: dict[str, CancellationToken] = {}
        self._lock = threading.Lock()
        self._executor: ThreadPoolExecutor | None = None

    def create_job(self, output_path: Path, **kwargs: Any) -> ConversionJob:
        """创建任务"""
        job_id = str(uuid.uuid4())

        # 未显式给出的选项取运行期配置默认值
        options = kwargs.pop("options", None)
        if isinstance(options, ConversionOptions):
            options = options.model_dump(exclude_unset=True)
        kwargs["options"] = {**self._default_options(), **(options or {})}

        try:
            job = ConversionJob(job_id=job_id, output_path=Path(output_path), **kwargs)
        except pydantic.ValidationError as e:
            raise ValidationError(f"任务参数错误: {e}") from e

        if job.source_path is not None and not job.source_path.exists():
            raise ValidationError(f"源文件不存在: {job.source_path}")

        with self._lock:
            self._jobs[job_id] = job
            self._tokens[job_id] = CancellationToken()

        self._persist_job(job)
        logger.info(f"[{job_id}] 任务已创建: {job.source_path or job.prompt!r}")
        return job

    def get_job(self, job_id: str) -> ConversionJob | None:
        """获取任务"""
        # 先查缓存
        with self._lock:
            if job_id in self._jobs:
                return self._jobs[job_id]

        # 尝试从磁盘加载
        job = self._load_job(job_id)
        if job:
            with self._lock:
                self._jobs.setdefault(job_id, job)
        return job

    def update_job(self, job: ConversionJob) -> None:
        """更新任务状态"""
        with self._lock:
            self._jobs[job.job_id] = job
        self._persist_job(job)

    def cancel_job(self, job_id: str) -> bool:
        """取消任务（未开始的任务直接终止，运行中的任务在下一阶段前终止）"""
        job = self.get_job(job_id)
        if not job or job.is_terminal:
            return False

        with self._lock:
            token = self._tokens.setdefault(job_id, CancellationToken())
        token.cancel()
        logger.info(f"[{job_id}] 已请求取消")

        if job.status == JobStatus.PENDING:
            job.mark_cancelled()
            self.update_job(job)
        return True

    def list_jobs(
        self,
        status: JobStatus | None = None,
        limit: int = 100,
    ) -> list[ConversionJob]:
        """列出任务"""
        with self._lock:
            jobs = list(self._jobs.values())

        if status:
            jobs = [j for j in jobs if j.status == status]

        # 按创建时间降序
        jobs.sort(key=lambda j: j.created_at, reverse=True)

        return jobs[:limit]

    def run(
        self,
        job_id: str,
        progress_cb: ProgressCallback | None = None,
    ) -> ConversionJob:
        """同步执行任务（异常上抛，任务状态已持久化）"""
        job = self.get_job(job_id)
        if job is None:
            raise ValidationError(f"任务不存在: {job_id}")
        if job.status == JobStatus.CANCELLED:
            raise PipelineCancelledError(f"任务已取消: {job_id}")
        if job.is_terminal:
            raise ValidationError(f"任务已结束: {job_id} ({job.status.value})")

        with self._lock:
            token = self._tokens.setdefault(job_id, CancellationToken())

        def _on_progress(event: ProgressEvent) -> None:
            self._persist_job(job)
            if progress_cb is not None:
                progress_cb(event)

        try:
            return self.pipeline.execute(job, cancel_token=token, progress_cb=_on_progress)
        finally:
            self.update_job(job)

    def submit(
        self,
        job_id: str,
        progress_cb: ProgressCallback | None = None,
    ) -> Future:
        """提交到线程池，返回 Future（结果为任务，失败时为异常）"""
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers, thread_name_prefix="vectorcut-job"
                )
            executor = self._executor
        return executor.submit(self.run, job_id, progress_cb)

    def shutdown(self, wait: bool = True) -> None:
        """关闭线程池并释放流水线持有的客户端"""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
        self.pipeline.close()

    def _default_options(self) -> dict[str, Any]:
        pipeline = self.config.pipeline
        return {
            "target_size_mm": pipeline.target_size_mm,
            "oversample": pipeline.oversample,
            "threshold": pipeline.threshold,
            "colors": pipeline.colors,
            "turd_size": pipeline.turd_size,
            "turn_policy": pipeline.turn_policy,
            "alpha_max": pipeline.alpha_max,
            "despeckle": pipeline.despeckle,
            "smooth": pipeline.smooth,
        }

    def _persist_job(self, job: ConversionJob) -> None:
        """持久化任务"""
        job_dir = self.config.get_job_dir(job.job_id)
        try:
            job_dir.mkdir(parents=True, exist_ok=True)
            job_file = job_dir / "job.json"
            with open(job_file, "w", encoding="utf-8") as f:
                json.dump(job.model_dump(mode="json"), f, ensure_ascii=False, indent=2, default=str)
        except OSError as e:
            raise FilesystemError(f"任务持久化失败: {job_dir}: {e}") from e

    def _load_job(self, job_id: str) -> ConversionJob | None:
        """从磁盘加载任务"""
        job_file = self.config.get_job_dir(job_id) / "job.json"

        if not job_file.exists():
            return None

        try:
            with open(job_file, encoding="utf-8") as f:
                data = json.load(f)
            return ConversionJob(**data)
        except (OSError, ValueError) as e:
            logger.warning(f"任务文件无法加载: {job_file}: {e}")
            return None

"""
任务工作区 - 每个任务独占的中间文件命名空间

职责：
1. 中间文件统一放在 storage/jobs/<job_id>/work 下
2. 文件名以 job_id 为前缀（同名源文件的并发任务互不冲突）
3. 登记中间产物并在任务结束时尽力清理（失败只记录，不上抛）

测试要点：
- test_distinct_names_same_basename: 同名源文件的两个任务中间文件不同
- test_cleanup_removes_artifacts: 清理后不残留
- test_cleanup_failure_logged: 删除失败只记录
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from ..interfaces import FilesystemError

if TYPE_CHECKING:
    from ..config import RuntimeConfig
    from ..models import ConversionJob

logger = logging.getLogger(__name__)


class JobWorkspace:
    """任务工作区"""

    def __init__(self, job: ConversionJob, config: RuntimeConfig):
        self.job = job
        self.work_dir = config.get_job_dir(job.job_id) / "work"

    def prepare(self) -> Path:
        """创建工作目录与输出目录"""
        output_dir = self.job.output_path.parent
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise FilesystemError(f"无法创建工作目录: {self.work_dir} / {output_dir}: {e}") from e
        self.job.work_dir = self.work_dir
        return self.work_dir

    def temp_path(self, name: str) -> Path:
        """分配中间文件路径（job_id 前缀）并登记"""
        path = self.work_dir / f"{self.job.job_id}-{name}"
        return self.job.register_artifact(path)

    def cleanup(self) -> list[FilesystemError]:
        """删除已登记的中间产物，返回清理失败列表"""
        failures: list[FilesystemError] = []
        for path in list(self.job.intermediate_artifacts):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                failures.append(FilesystemError(f"中间文件删除失败: {path}: {e}"))
            else:
                self.job.intermediate_artifacts.remove(path)

        try:
            if self.work_dir.exists() and not any(self.work_dir.iterdir()):
                self.work_dir.rmdir()
        except OSError as e:
            failures.append(FilesystemError(f"工作目录删除失败: {self.work_dir}: {e}"))

        for failure in failures:
            logger.warning(f"[{self.job.job_id}] {failure}")
        if not failures:
            logger.debug(f"[{self.job.job_id}] 中间文件已清理")
        return failures

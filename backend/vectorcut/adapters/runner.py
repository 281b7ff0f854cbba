"""
外部工具执行器 - 统一的子进程调用

职责：
- 带超时同步执行外部命令
- 非零退出/缺少输出文件 → ToolExecutionError（含退出码与stderr摘要）
- 超时 → ToolTimeoutError
- 执行前删除旧输出，保证重跑可覆盖且不会误用上次结果
"""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path

from ..interfaces import ToolExecutionError, ToolTimeoutError

logger = logging.getLogger(__name__)

STDERR_EXCERPT_CHARS = 500


def excerpt(text: str | bytes | None, limit: int = STDERR_EXCERPT_CHARS) -> str:
    """截取输出末尾（错误信息通常在最后）"""
    if not text:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    text = text.strip()
    return text if len(text) <= limit else "..." + text[-limit:]


def run_tool(
    stage: str,
    cmd: list[str],
    timeout: float,
    expected_output: Path | None = None,
    cwd: Path | None = None,
) -> subprocess.CompletedProcess:
    """执行外部工具"""
    if expected_output is not None:
        expected_output.parent.mkdir(parents=True, exist_ok=True)
        expected_output.unlink(missing_ok=True)

    logger.debug(f"[{stage}] 执行: {shlex.join(cmd)}")
    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            encoding="utf-8",
            errors="replace",
            timeout=timeout,
            check=True,
            cwd=str(cwd) if cwd else None,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolTimeoutError(stage, timeout) from e
    except subprocess.CalledProcessError as e:
        detail = e.stderr or e.stdout or ""
        raise ToolExecutionError(
            stage,
            f"工具执行失败（退出码 {e.returncode}）",
            exit_code=e.returncode,
            stderr_excerpt=excerpt(detail),
        ) from e
    except FileNotFoundError as e:
        raise ToolExecutionError(stage, f"可执行文件不存在: {cmd[0]}") from e

    if expected_output is not None and not expected_output.exists():
        raise ToolExecutionError(
            stage,
            f"输出文件不存在: {expected_output}",
            exit_code=result.returncode,
            stderr_excerpt=excerpt(result.stderr),
        )
    return result

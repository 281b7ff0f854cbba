"""
命令行入口 - vectorcut

子命令：
- convert <input> <output>: 图像/SVG → SVG + DXF（可选合成手机壳）
- generate <prompt> <output>: 提示词 → 图像 → SVG + DXF
- merge <design.svg> <output>: 设计稿合入固定模板（输出 .dxf 时同时导出）
- stitch <model> <design.svg> <output>: 按机型生成手机壳
- models: 列出支持的机型

退出码：0 成功，1 失败，2 参数错误
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

from .adapters import DxfExporter
from .compositor import PhoneCaseStitcher, TemplateCompositor
from .config import get_config, load_profiles, reload_config
from .interfaces import ValidationError, VectorCutError
from .logging_utils import setup_logging
from .models import CompositeMode, ConversionJob, ProgressEvent
from .pipeline import JobManager

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vectorcut",
        description="图像/提示词 → 激光切割矢量文件（SVG/DXF），可选合成手机壳",
    )
    parser.add_argument("--config", default="", help="运行期配置文件（默认：config/runtime.yaml）")
    parser.add_argument("--log-level", default="", help="日志级别（覆盖配置）")
    sub = parser.add_subparsers(dest="command", required=True)

    convert = sub.add_parser("convert", help="图像或SVG转换为SVG/DXF")
    convert.add_argument("input", help="源图像（PNG/JPG等）或SVG")
    convert.add_argument("output", help="输出DXF路径（SVG写在同目录）")
    convert.add_argument("--threshold", type=float, default=None, help="二值化阈值 0-100（默认：50）")
    convert.add_argument("--colors", type=int, default=None, help="分色数量（默认：8）")
    convert.add_argument("--preserve-colors", action="store_true", help="按颜色分层描摹")
    convert.add_argument("--keep-files", action="store_true", help="保留中间文件")
    convert.add_argument("--size-mm", type=float, default=None, help="输出物理边长mm（默认：60）")
    convert.add_argument(
        "--no-despeckle", dest="despeckle", action="store_const", const=False, default=None,
        help="关闭预处理去噪点",
    )
    convert.add_argument(
        "--no-smooth", dest="smooth", action="store_const", const=False, default=None,
        help="关闭预处理平滑",
    )
    _add_phone_case_args(convert)

    generate = sub.add_parser("generate", help="提示词生成线稿并转换")
    generate.add_argument("prompt", help="文本提示词")
    generate.add_argument("output", help="输出目录或DXF路径（目录时按时间戳命名）")
    generate.add_argument("--size", default=None, help="图像尺寸（默认：1024x1024）")
    generate.add_argument("--keep-files", action="store_true", help="保留中间文件")
    _add_phone_case_args(generate)

    merge = sub.add_parser("merge", help="设计稿合入固定手机壳模板")
    merge.add_argument("design", help="设计稿SVG")
    merge.add_argument("output", help="输出SVG或DXF")
    merge.add_argument("--template", default="", help="模板SVG（默认：包内 iPhone 12 背板）")
    merge.add_argument("--anchor", type=float, nargs=2, metavar=("X", "Y"), default=None)
    merge.add_argument("--scale", type=float, default=None, help="缩放倍数（默认：4）")

    stitch = sub.add_parser("stitch", help="按机型生成手机壳并居中设计稿")
    stitch.add_argument("model", help="机型键（见 models 子命令）")
    stitch.add_argument("design", help="设计稿SVG")
    stitch.add_argument("output", help="输出SVG或DXF")
    stitch.add_argument("--design-scale", type=float, default=1.0, help="设计稿缩放（默认：1）")

    sub.add_parser("models", help="列出支持的机型")
    return parser


def _add_phone_case_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--phone-case", action="store_true", help="同时生成手机壳合成文件")
    parser.add_argument("--template", default="", help="固定模板SVG（模板模式）")
    parser.add_argument("--phone-model", default="", help="机型键（按机型拼接模式）")


def _composite_request(args: argparse.Namespace) -> dict | None:
    if not args.phone_case and not args.phone_model:
        return None
    if args.phone_model:
        return {"mode": CompositeMode.STITCH, "phone_model": args.phone_model}
    return {"mode": CompositeMode.TEMPLATE, "template_path": args.template or None}


def _print_progress(event: ProgressEvent) -> None:
    if event.complete:
        print(f"[{event.step}/4] 完成")
    else:
        print(f"[{event.step}/4] {event.message}...")


def _print_result(job: ConversionJob) -> None:
    artifacts = job.artifacts
    print("转换完成")
    for label, path in (
        ("图像", artifacts.image_path),
        ("SVG", artifacts.svg_path),
        ("DXF", artifacts.dxf_path),
        ("手机壳SVG", artifacts.composite_svg_path),
        ("手机壳DXF", artifacts.composite_dxf_path),
    ):
        if path is not None:
            print(f"  {label}: {path}")
    summary = artifacts.dxf_summary
    if summary is not None and summary.width is not None:
        print(f"  DXF范围: {summary.width:.2f} x {summary.height:.2f}（实体 {summary.entity_count}）")


def _cmd_convert(args: argparse.Namespace) -> int:
    options: dict = {
        "preserve_color": args.preserve_colors,
        "keep_intermediates": args.keep_files,
    }
    if args.despeckle is not None:
        options["despeckle"] = args.despeckle
    if args.smooth is not None:
        options["smooth"] = args.smooth
    if args.threshold is not None:
        options["threshold"] = args.threshold
    if args.colors is not None:
        options["colors"] = args.colors
    if args.size_mm is not None:
        options["target_size_mm"] = args.size_mm

    manager = JobManager()
    job = manager.create_job(
        Path(args.output),
        source_path=Path(args.input),
        options=options,
        composite=_composite_request(args),
    )
    try:
        _print_result(manager.run(job.job_id, progress_cb=_print_progress))
    finally:
        manager.shutdown()
    return EXIT_OK


def generated_output_path(output: Path, timestamp_ms: int | None = None) -> Path:
    """提示词任务输出路径：目录时命名为 ai-generated-<毫秒时间戳>.dxf"""
    if output.suffix:
        return output
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return output / f"ai-generated-{timestamp_ms}.dxf"


def _cmd_generate(args: argparse.Namespace) -> int:
    options: dict = {"keep_intermediates": args.keep_files}
    if args.size:
        options["image_size"] = args.size

    manager = JobManager()
    job = manager.create_job(
        generated_output_path(Path(args.output)),
        prompt=args.prompt,
        options=options,
        composite=_composite_request(args),
    )
    try:
        _print_result(manager.run(job.job_id, progress_cb=_print_progress))
    finally:
        manager.shutdown()
    return EXIT_OK


def _export_if_dxf(svg_path: Path, output: Path) -> None:
    if output.suffix.lower() != ".dxf":
        return
    summary = DxfExporter().export_to_dxf(svg_path, output)
    print(f"  DXF: {output}（实体 {summary.entity_count}）")


def _cmd_merge(args: argparse.Namespace) -> int:
    output = Path(args.output)
    svg_output = output.with_suffix(".svg")
    template = Path(args.template) if args.template else get_config().get_template_path()

    result = TemplateCompositor().composite(
        Path(args.design),
        template,
        svg_output,
        anchor=tuple(args.anchor) if args.anchor else None,
        scale=args.scale,
    )
    print(f"合成完成: {result.output_path}（路径 {result.path_count}）")
    _export_if_dxf(svg_output, output)
    return EXIT_OK


def _cmd_stitch(args: argparse.Namespace) -> int:
    output = Path(args.output)
    svg_output = output.with_suffix(".svg")

    result = PhoneCaseStitcher().stitch(
        args.model, Path(args.design), svg_output, design_scale=args.design_scale
    )
    print(f"拼接完成: {result.output_path}")
    _export_if_dxf(svg_output, output)
    return EXIT_OK


def _cmd_models(args: argparse.Namespace) -> int:
    registry = load_profiles()
    for key in registry.keys():
        profile = registry.get(key)
        print(f"{key:<16} {profile.name:<24} {profile.width_mm:g} x {profile.height_mm:g} mm")
    return EXIT_OK


_COMMANDS = {
    "convert": _cmd_convert,
    "generate": _cmd_generate,
    "merge": _cmd_merge,
    "stitch": _cmd_stitch,
    "models": _cmd_models,
}


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    config = reload_config(args.config) if args.config else get_config()
    setup_logging(config, level=args.log_level or None)

    try:
        return _COMMANDS[args.command](args)
    except ValidationError as e:
        print(f"参数错误: {e}")
        return EXIT_USAGE
    except VectorCutError as e:
        logger.debug(f"命令失败: {args.command}", exc_info=True)
        print(f"失败: {e}")
        return EXIT_FAILURE


if __name__ == "__main__":
    raise SystemExit(main())

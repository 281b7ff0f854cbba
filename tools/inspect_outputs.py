import argparse
from pathlib import Path

from vectorcut.adapters import inspect_dxf
from vectorcut.interfaces import MalformedDesignError, ToolExecutionError
from vectorcut.svg import read_vector_document


def _collect_inputs(out_dir: Path) -> list[Path]:
    return sorted(
        p for p in out_dir.iterdir() if p.suffix.lower() in (".svg", ".dxf")
    )


def _describe_svg(path: Path) -> str:
    doc = read_vector_document(path)
    width, height = doc.physical_size_mm()
    colors = ", ".join(doc.colors) or "-"
    return (
        f"SVG layers={len(doc.layers)} paths={doc.path_count} "
        f"size={width:g}x{height:g}mm colors={colors}"
    )


def _describe_dxf(path: Path) -> str:
    summary = inspect_dxf(path)
    if summary.width is None:
        return f"DXF entities={summary.entity_count} extents=空"
    return (
        f"DXF entities={summary.entity_count} "
        f"extents={summary.width:.2f}x{summary.height:.2f} insunits={summary.insunits}"
    )


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Inspect vectorcut SVG/DXF outputs in a directory."
    )
    parser.add_argument(
        "out_dir",
        nargs="?",
        default="storage/out",
        help="输出目录（默认：storage/out）",
    )
    args = parser.parse_args()

    out_dir = Path(args.out_dir)
    if not out_dir.is_dir():
        print(f"目录不存在: {out_dir}")
        return 1

    inputs = _collect_inputs(out_dir)
    if not inputs:
        print("未找到可检查文件")
        return 1

    failed = 0
    for path in inputs:
        try:
            if path.suffix.lower() == ".svg":
                line = _describe_svg(path)
            else:
                line = _describe_dxf(path)
        except (MalformedDesignError, ToolExecutionError, OSError) as exc:
            failed += 1
            print(f"[FAIL] {path.name}: {exc}")
            continue
        print(f"[OK] {path.name}: {line}")

    print(f"共 {len(inputs)} 个文件，失败 {failed} 个")
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""
solid_converter.py
==================

Reads the material assignments of a 3DS model and wires them into a solid
template tree (Root / ModelElements / Part_XX CPlugTree XML files).

The template directory must already hold the XML written by 3ds2gbxml for
the same model: one CPlugVisualIndexedTriangles XML per 0x4130 face group
and the generated CPlugSurface XML.

Usage:
    python3 solid_converter.py --verbose inspect --model input/MyModel.3ds

    python3 solid_converter.py build \\
        --model input/MyModel.3ds \\
        --template-dir work/MyModel/template \\
        --report work/MyModel/build_report.json
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from dataclasses import asdict
from pathlib import Path
from typing import Dict, List, Optional

from chunk_walker import walk_file
from material_catalog import (
    DEFAULT_CATALOG,
    declared_block_warning,
    material_name_warnings,
)
from tds_materials import TdsMaterials, read_model, summarize_material_usage
from tree_builder import BuildResult, TemplateBuildError, build_trees
from validate_template import validate_tree


def log_model_materials(model: TdsMaterials) -> List[str]:
    """Log the material summary of a model and return its warnings."""
    usage = summarize_material_usage(list(model.groups))

    logging.info("3DS materials (declared 0xA000): %d", len(model.declared))
    logging.info("3DS materials (used 0x4130): %d", len(usage))

    warnings: List[str] = []
    block_warning = declared_block_warning(model.declared)
    if block_warning:
        warnings.append(block_warning)

    for entry in usage:
        marker = "" if DEFAULT_CATALOG.is_known(entry.name) else "  [UNKNOWN MATERIAL]"
        logging.info("- %s (%d faces)%s", entry.name, entry.face_count, marker)

    warnings.extend(material_name_warnings(model.groups, DEFAULT_CATALOG))

    for cov in model.coverage:
        if cov.unassigned:
            warnings.append(
                f"Object '{cov.object_name}': {cov.unassigned}/{cov.face_count} faces "
                f"have no material group"
            )
        if cov.out_of_range:
            warnings.append(
                f"Object '{cov.object_name}': {cov.out_of_range} face group indices "
                f"out of range (faces={cov.face_count})"
            )

    for message in warnings:
        logging.warning("%s", message)
    return warnings


def _model_report(model: TdsMaterials) -> Dict[str, object]:
    return {
        "model": str(model.path),
        "declared_materials": list(model.declared),
        "face_groups": [
            {
                "material": g.material_name,
                "face_count": g.face_count,
                "object": g.object_name,
            }
            for g in model.groups
        ],
        "usage": [asdict(u) for u in summarize_material_usage(list(model.groups))],
        "coverage": [asdict(c) for c in model.coverage],
    }


def _build_report(result: BuildResult) -> Dict[str, object]:
    return {
        "root": str(result.root_path),
        "model_elements": str(result.model_elements_path),
        "surface": result.surface_xml,
        "visuals": list(result.visual_xmls),
        "parts": [
            {"file": part, "ref": ref}
            for part, ref in zip(result.created_parts, result.part_refs)
        ],
        "warnings": list(result.warnings),
    }


def _write_report(report_path: Path, report: Dict[str, object]) -> None:
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2))
    logging.info("Report written to %s", report_path)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_inspect(args: argparse.Namespace) -> int:
    model = read_model(args.model)
    if args.verbose:
        for chunk in walk_file(args.model):
            logging.debug(
                "chunk 0x%04X at %d (length=%d)", chunk.chunk_id, chunk.offset, chunk.length
            )

    warnings = log_model_materials(model)

    if args.report:
        report = _model_report(model)
        report["warnings"] = warnings
        _write_report(args.report, report)
    return 0


def cmd_build(args: argparse.Namespace) -> int:
    if not args.template_dir.is_dir():
        logging.error("Template directory not found: %s", args.template_dir)
        return 1

    model = read_model(args.model)
    model_warnings = log_model_materials(model)
    model_name = args.name or args.model.stem

    start = time.time()
    try:
        result = build_trees(
            args.template_dir,
            model_name,
            list(model.groups),
            strict_pairing=args.strict_pairing,
        )
    except TemplateBuildError as exc:
        logging.error("Tree build failed: %s", exc)
        return 1

    logging.info(
        "Tree build OK: parts=%d, visuals=%d, surface=%s (%.2fs)",
        len(result.created_parts), len(result.visual_xmls), result.surface_xml,
        time.time() - start,
    )
    for part, ref in zip(result.created_parts, result.part_refs):
        logging.info("- %s (ref=%s)", part, ref)

    failed = 0
    if args.validate and result.created_parts:
        failed = validate_tree(args.template_dir).failed

    if args.report:
        report = {
            "input": _model_report(model),
            "build": _build_report(result),
            "model_warnings": model_warnings,
            "validation_failures": failed,
        }
        _write_report(args.report, report)

    return 1 if failed else 0


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Wire 3DS face material groups into a solid template tree."
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    insp = sub.add_parser("inspect", help="Print the material usage of a 3DS model")
    insp.add_argument("--model", type=Path, required=True, help="Source .3ds file")
    insp.add_argument("--report", type=Path, default=None, help="Path for JSON report")
    insp.set_defaults(fn=cmd_inspect)

    build = sub.add_parser("build", help="Generate Part_XX trees in a template directory")
    build.add_argument("--model", type=Path, required=True, help="Source .3ds file")
    build.add_argument(
        "--template-dir", type=Path, required=True,
        help="Template directory already holding the 3ds2gbxml XML output",
    )
    build.add_argument(
        "--name", default=None,
        help="Model name written to Root.CPlugTree.xml (default: model file stem)",
    )
    build.add_argument(
        "--strict-pairing", action="store_true",
        help="Fail when the number of face groups and visuals differ",
    )
    build.add_argument(
        "--validate", action="store_true",
        help="Validate the generated tree after the build",
    )
    build.add_argument("--report", type=Path, default=None, help="Path for JSON build report")
    build.set_defaults(fn=cmd_build)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.model.is_file():
        logging.error("Model file not found: %s", args.model)
        return 1

    return int(args.fn(args))


if __name__ == "__main__":
    sys.exit(main())

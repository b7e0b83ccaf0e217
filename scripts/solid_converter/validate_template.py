#!/usr/bin/env python3
"""
validate_template.py
====================

Structural validation of a solid template directory after ``build_trees``:
every generated part must link an existing visual and a declared material
ref, every ModelElements child must exist and the root surface link must
resolve.

Usage:
    python3 validate_template.py \\
        --template-dir work/MyModel/template \\
        --report work/MyModel/validation_report.json \\
        --verbose
"""

from __future__ import annotations

import argparse
import json
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from reference_table import ReferenceTable, read_declared_refs
from tree_builder import (
    MODEL_ELEMENTS_TREE,
    ROOT_TREE,
    SOLID_XML,
    SURFACE_LINK_PATTERN,
)

NODE_LINK_VALUE = re.compile(r'<node\s+link\s*=\s*"([^"]+)"\s*/>', re.IGNORECASE)
NODE_REF_VALUE = re.compile(r'<node\s+ref\s*=\s*"([^"]+)"\s*/>', re.IGNORECASE)
LIST_BODY = re.compile(r'<list\b[^>]*>(.*?)</list>', re.IGNORECASE | re.DOTALL)

PART_GLOB = "Part_*.CPlugTree.xml"


# ---------------------------------------------------------------------------
# Validation functions
# ---------------------------------------------------------------------------

def validate_part(path: Path, table: Optional[ReferenceTable]) -> Tuple[bool, str]:
    """A part must link an existing visual and a (declared) material ref."""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        return False, f"cannot read: {exc}"

    link = NODE_LINK_VALUE.search(text)
    if link is None:
        return False, "no visual link"
    if not (path.parent / link.group(1)).is_file():
        return False, f"missing visual: {link.group(1)}"

    ref = NODE_REF_VALUE.search(text)
    if ref is None or not ref.group(1).strip():
        return False, "no material ref"
    if table is not None and len(table) > 0 and ref.group(1) not in table:
        return False, f"undeclared material ref: {ref.group(1)}"

    return True, "ok"


def validate_model_elements(path: Path) -> Tuple[bool, str]:
    """The first children list must be non-empty and point at existing trees."""
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        return False, f"cannot read: {exc}"

    body = LIST_BODY.search(text)
    if body is None:
        return False, "no <list> block"

    children = NODE_LINK_VALUE.findall(body.group(1))
    if not children:
        return False, "empty children list"
    for child in children:
        if not (path.parent / child).is_file():
            return False, f"missing child: {child}"

    return True, "ok"


def validate_root(path: Path) -> Tuple[bool, str]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        return False, f"cannot read: {exc}"

    surface = SURFACE_LINK_PATTERN.search(text)
    if surface is None:
        return False, "no surface link"
    if not (path.parent / surface.group(1)).is_file():
        return False, f"missing surface: {surface.group(1)}"

    return True, "ok"


# ---------------------------------------------------------------------------
# Batch validation
# ---------------------------------------------------------------------------

@dataclass
class ValidationStats:
    total: int = 0
    passed: int = 0
    failed: int = 0
    failures: List[Dict] = field(default_factory=list)


def _record(stats: ValidationStats, path: Path, ftype: str, ok: bool, reason: str) -> None:
    stats.total += 1
    if ok:
        stats.passed += 1
        return
    stats.failed += 1
    stats.failures.append({"path": path.name, "type": ftype, "reason": reason})
    logging.warning("FAIL: %s - %s", path.name, reason)


def validate_tree(template_dir: Path, report_path: Optional[Path] = None) -> ValidationStats:
    stats = ValidationStats()

    solid_path = template_dir / SOLID_XML
    table = read_declared_refs(solid_path) if solid_path.is_file() else None

    root_path = template_dir / ROOT_TREE
    ok, reason = validate_root(root_path) if root_path.is_file() else (False, "missing")
    _record(stats, root_path, "root", ok, reason)

    elements_path = template_dir / MODEL_ELEMENTS_TREE
    if elements_path.is_file():
        ok, reason = validate_model_elements(elements_path)
    else:
        ok, reason = False, "missing"
    _record(stats, elements_path, "model_elements", ok, reason)

    for part_path in sorted(template_dir.glob(PART_GLOB)):
        ok, reason = validate_part(part_path, table)
        _record(stats, part_path, "part", ok, reason)

    logging.info(
        "Validation: %d total, %d passed, %d failed",
        stats.total, stats.passed, stats.failed,
    )

    if report_path:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report = {
            "template_dir": str(template_dir),
            "total": stats.total,
            "passed": stats.passed,
            "failed": stats.failed,
            "failures": stats.failures,
        }
        report_path.write_text(json.dumps(report, indent=2))
        logging.info("Report written to %s", report_path)

    return stats


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Validate a generated solid template tree."
    )
    parser.add_argument(
        "--template-dir", type=Path, required=True,
        help="Template directory containing Root/ModelElements/Part_XX trees",
    )
    parser.add_argument(
        "--report", type=Path, default=None,
        help="Path for JSON validation report",
    )
    parser.add_argument("--verbose", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.template_dir.is_dir():
        logging.error("Template directory not found: %s", args.template_dir)
        return 1

    stats = validate_tree(args.template_dir, report_path=args.report)

    if stats.failed > 0:
        logging.warning("%d files failed validation", stats.failed)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

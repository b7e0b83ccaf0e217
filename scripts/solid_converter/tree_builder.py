#!/usr/bin/env python3
"""
tree_builder.py
===============

Generates the CPlugTree part hierarchy of a solid template directory.

The template directory is expected to already contain the XML produced by
3ds2gbxml (one ``*CPlugVisualIndexedTriangles*.xml`` per face/material group
and a ``*.CPlugSurface*.xml``).  For every visual a ``Part_XX.CPlugTree.xml``
is cloned from ``Model.CPlugTree.xml``, ``ModelElements.CPlugTree.xml`` gets
its children list rewritten and ``Root.CPlugTree.xml`` is pointed at the
model name and surface.

The templates are patched as text, first match only, so that every byte the
builder does not touch is written back unchanged.  Only a missing or
unreadable required template file is fatal, and it is detected before any
file is written; every other problem is logged with
``logging.warning`` and recorded in ``BuildResult.warnings``.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

from material_catalog import DEFAULT_CATALOG, MaterialCatalog, canonicalize
from reference_table import ReferenceTable, read_declared_refs
from tds_materials import FaceMatGroup

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ROOT_TREE = "Root.CPlugTree.xml"
MODEL_ELEMENTS_TREE = "ModelElements.CPlugTree.xml"
LEAF_TEMPLATE_TREE = "Model.CPlugTree.xml"
SOLID_XML = "Template.Solid.xml"

TEMPLATE_SURFACE = "Template.CPlugSurfaceCrystal.xml"
TEMPLATE_SURFACE_PREFIX = "template."
TEMPLATE_VISUAL_PREFIX = "model."

SURFACE_GLOB = "*.cplugsurface*.xml"
VISUAL_GLOB = "*cplugvisualindexedtriangles*.xml"

PART_TREE_SUFFIX = ".CPlugTree.xml"
DEFAULT_MATERIAL_REF = "Sand"

LOOKBACKSTR_PATTERN = re.compile(
    r'<lookbackstr\s+type\s*=\s*"40">\s*.*?\s*</lookbackstr>', re.IGNORECASE | re.DOTALL
)
NODE_LINK_PATTERN = re.compile(r'<node\s+link\s*=\s*"[^"]+"\s*/>', re.IGNORECASE)
NODE_REF_PATTERN = re.compile(r'<node\s+ref\s*=\s*"[^"]+"\s*/>', re.IGNORECASE)
SURFACE_LINK_PATTERN = re.compile(r'link\s*=\s*"([^"]*CPlugSurface[^"]*\.xml)"', re.IGNORECASE)
TEMPLATE_SURFACE_PATTERN = re.compile(re.escape(TEMPLATE_SURFACE), re.IGNORECASE)
LIST_BLOCK_PATTERN = re.compile(r'(<list\b[^>]*>).*?</list>', re.IGNORECASE | re.DOTALL)


class TemplateBuildError(Exception):
    pass


class MissingTemplateFileError(TemplateBuildError):
    pass


class PairingError(TemplateBuildError):
    pass


class TemplateReadError(TemplateBuildError):
    pass


@dataclass(frozen=True)
class BuildResult:
    root_path: Path
    model_elements_path: Path
    created_parts: Tuple[str, ...] = ()
    part_refs: Tuple[str, ...] = ()
    surface_xml: Optional[str] = None
    visual_xmls: Tuple[str, ...] = ()
    warnings: Tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------

def _read_text(path: Path) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def _load_template(path: Path) -> str:
    try:
        return _read_text(path)
    except (OSError, UnicodeDecodeError) as exc:
        raise TemplateReadError(f"Cannot read {path.name}: {exc}") from exc


def _write_text(path: Path, text: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(text)


def escape_xml(value: str) -> str:
    return escape(value, {'"': "&quot;", "'": "&apos;"})


def _newline_of(text: str) -> str:
    return "\r\n" if "\r\n" in text else "\n"


def _sub_first(pattern: re.Pattern, text: str, replacement: str) -> Tuple[str, bool]:
    new_text, count = pattern.subn(lambda _m: replacement, text, count=1)
    return new_text, count > 0


def replace_typed_name(xml: str, value: str) -> Tuple[str, bool]:
    return _sub_first(
        LOOKBACKSTR_PATTERN, xml, f'<lookbackstr type="40">{escape_xml(value)}</lookbackstr>'
    )


def replace_first_node_link(xml: str, file_name: str) -> Tuple[str, bool]:
    return _sub_first(NODE_LINK_PATTERN, xml, f'<node link="{escape_xml(file_name)}"/>')


def replace_first_node_ref(xml: str, ref_name: str) -> Tuple[str, bool]:
    return _sub_first(NODE_REF_PATTERN, xml, f'<node ref="{escape_xml(ref_name)}"/>')


def replace_surface_link(xml: str, surface_xml: str) -> Tuple[str, Optional[str]]:
    """Point the first surface link at *surface_xml*.

    Returns the new text and how it was matched ("attribute", "literal") or
    None when nothing could be replaced.
    """
    new_text, done = _sub_first(SURFACE_LINK_PATTERN, xml, f'link="{escape_xml(surface_xml)}"')
    if done:
        return new_text, "attribute"
    new_text, done = _sub_first(TEMPLATE_SURFACE_PATTERN, xml, escape_xml(surface_xml))
    if done:
        return new_text, "literal"
    return xml, None


def replace_children_list(xml: str, part_files: Sequence[str]) -> Tuple[str, bool]:
    match = LIST_BLOCK_PATTERN.search(xml)
    if match is None:
        return xml, False

    newline = _newline_of(xml)
    line_start = xml.rfind("\n", 0, match.start()) + 1
    indent = xml[line_start:match.start()]
    if indent.strip():
        indent = ""

    lines = [match.group(1)]
    for part_file in part_files:
        lines.append(f"{indent}    <element>")
        lines.append(f'{indent}        <node link="{escape_xml(part_file)}"/>')
        lines.append(f"{indent}    </element>")
    lines.append(f"{indent}</list>")

    return xml[:match.start()] + newline.join(lines) + xml[match.end():], True


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def _sort_key(name: str) -> Tuple[str, str]:
    return name.casefold(), name


def _list_matching(template_dir: Path, pattern: str) -> List[str]:
    return sorted(
        (p.name for p in template_dir.iterdir()
         if p.is_file() and fnmatch.fnmatchcase(p.name.lower(), pattern)),
        key=_sort_key,
    )


def detect_surface(template_dir: Path) -> Optional[str]:
    """The generated surface XML, or the template's own one when none was generated."""
    candidates = _list_matching(template_dir, SURFACE_GLOB)
    generated = [c for c in candidates if not c.lower().startswith(TEMPLATE_SURFACE_PREFIX)]
    if generated:
        return generated[0]
    return candidates[0] if candidates else None


def detect_visuals(template_dir: Path) -> List[str]:
    """Generated visual XMLs in pairing order; the ``Model.*`` placeholder is excluded."""
    return [
        c for c in _list_matching(template_dir, VISUAL_GLOB)
        if not c.lower().startswith(TEMPLATE_VISUAL_PREFIX)
    ]


def part_name(index: int) -> str:
    return f"Part_{index:02d}"


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

class _WarningLog:
    def __init__(self) -> None:
        self.messages: List[str] = []

    def __call__(self, message: str) -> None:
        logging.warning("%s", message)
        self.messages.append(message)


def _require(path: Path) -> Path:
    if not path.is_file():
        raise MissingTemplateFileError(f"Missing {path.name}: {path}")
    return path


def _desired_materials(
    visuals: Sequence[str],
    face_groups: Sequence[FaceMatGroup],
    material_by_visual: Optional[Mapping[str, str]],
    strict_pairing: bool,
    warn: _WarningLog,
) -> List[Optional[str]]:
    """Raw material name per visual; None means no material is known for it."""
    explicit: Dict[str, str] = {}
    if material_by_visual:
        explicit = {name.casefold(): mat for name, mat in material_by_visual.items()}

    paired_by_index = [v for v in visuals if v.casefold() not in explicit]
    if paired_by_index and len(face_groups) != len(paired_by_index):
        message = (
            f"Face material groups ({len(face_groups)}) and index-paired visuals "
            f"({len(paired_by_index)}) differ in count; pairing by index may assign "
            f"wrong materials"
        )
        if strict_pairing:
            raise PairingError(message)
        warn(message)

    # Unmapped visuals consume the face groups in order.
    remaining = iter(face_groups)
    desired: List[Optional[str]] = []
    for visual in visuals:
        if visual.casefold() in explicit:
            desired.append(explicit[visual.casefold()])
        else:
            group = next(remaining, None)
            desired.append(group.material_name if group is not None else None)
    return desired


def resolve_material_ref(
    raw_name: Optional[str],
    table: ReferenceTable,
    catalog: MaterialCatalog,
    warn: _WarningLog,
    context: str = "",
) -> str:
    """Turn a raw 3DS material name into a ref that the solid declares."""
    desired = DEFAULT_MATERIAL_REF
    if raw_name is not None and raw_name.strip():
        canonical = canonicalize(raw_name, catalog)
        desired = canonical.value
        if not canonical.known:
            declared = table.get(canonical.value)
            if declared is not None:
                desired = declared
            warn(f"{context}Unknown material '{raw_name.strip()}' (normalized to '{desired}')")

    if len(table) == 0:
        warn(
            f"{context}No declared material refs; forcing '{DEFAULT_MATERIAL_REF}' "
            f"(wanted '{desired}')"
        )
        return DEFAULT_MATERIAL_REF

    if desired not in table:
        fallback = table.fallback() or DEFAULT_MATERIAL_REF
        warn(
            f"{context}Material ref '{desired}' not declared in {SOLID_XML} "
            f"-> using '{fallback}'"
        )
        return fallback

    return desired


def _patch_root(
    root_path: Path,
    text: str,
    model_name: Optional[str],
    surface_xml: Optional[str],
    warn: _WarningLog,
) -> None:
    if model_name is not None:
        text, done = replace_typed_name(text, model_name)
        if not done:
            warn(f"{ROOT_TREE}: no model name field (lookbackstr type 40) to replace (kept as-is).")

    if surface_xml:
        text, how = replace_surface_link(text, surface_xml)
        if how is None:
            warn(f"{ROOT_TREE}: could not find a surface link to replace (kept as-is).")
        else:
            logging.info("Root patched (%s): surface link -> %s", how, surface_xml)

    _write_text(root_path, text)


def build_trees(
    template_dir: Path,
    model_name: str,
    face_groups: Sequence[FaceMatGroup],
    catalog: MaterialCatalog = DEFAULT_CATALOG,
    material_by_visual: Optional[Mapping[str, str]] = None,
    strict_pairing: bool = False,
) -> BuildResult:
    """Generate ``Part_XX`` trees for every visual found in *template_dir*."""
    template_dir = Path(template_dir)
    if not template_dir.is_dir():
        raise MissingTemplateFileError(f"Template dir not found: {template_dir}")

    warn = _WarningLog()

    root_path = _require(template_dir / ROOT_TREE)
    model_elements_path = _require(template_dir / MODEL_ELEMENTS_TREE)
    leaf_template_path = _require(template_dir / LEAF_TEMPLATE_TREE)

    # Nothing is written until all three templates have been read.
    root_text = _load_template(root_path)
    elements_text = _load_template(model_elements_path)
    leaf_text = _load_template(leaf_template_path)
    solid_path = template_dir / SOLID_XML

    surface_xml = detect_surface(template_dir)
    visual_xmls = detect_visuals(template_dir)

    logging.info("Visuals detected: %d", len(visual_xmls))
    if surface_xml is not None:
        logging.info("Surface detected: %s", surface_xml)
    else:
        warn("No surface xml found (*.CPlugSurface*.xml). Root keeps its current surface link.")

    if solid_path.is_file():
        table = read_declared_refs(solid_path)
        logging.info(
            "Declared material refs: %d (fallback=%r)", len(table), table.fallback()
        )
    else:
        table = ReferenceTable()
        warn(f"{SOLID_XML} not found; material refs fall back to '{DEFAULT_MATERIAL_REF}'.")

    if not visual_xmls:
        _patch_root(root_path, root_text, None, surface_xml, warn)
        warn(
            "No visual XML detected. Part trees are not generated and "
            f"{MODEL_ELEMENTS_TREE} keeps its existing children."
        )
        return BuildResult(
            root_path=root_path,
            model_elements_path=model_elements_path,
            surface_xml=surface_xml,
            visual_xmls=tuple(visual_xmls),
            warnings=tuple(warn.messages),
        )

    desired = _desired_materials(
        visual_xmls, face_groups, material_by_visual, strict_pairing, warn
    )

    _patch_root(root_path, root_text, model_name, surface_xml, warn)

    created_parts: List[str] = []
    part_refs: List[str] = []

    for i, visual_xml in enumerate(visual_xmls):
        name = part_name(i)
        part_file = name + PART_TREE_SUFFIX
        ref = resolve_material_ref(desired[i], table, catalog, warn, context=f"{part_file}: ")

        text, done = replace_typed_name(leaf_text, name)
        if not done:
            warn(f"{part_file}: no element name field to replace.")
        text, done = replace_first_node_link(text, visual_xml)
        if not done:
            warn(f"{part_file}: no visual link node to replace.")
        text, done = replace_first_node_ref(text, ref)
        if not done:
            warn(f"{part_file}: no material ref node to replace.")

        _write_text(template_dir / part_file, text)
        created_parts.append(part_file)
        part_refs.append(ref)
        logging.debug("Created %s (visual=%s, ref=%s)", part_file, visual_xml, ref)

    logging.info("Created parts: %d", len(created_parts))

    elements_text, done = replace_children_list(elements_text, created_parts)
    if done:
        _write_text(model_elements_path, elements_text)
        logging.info("%s children updated.", MODEL_ELEMENTS_TREE)
    else:
        warn(f"{MODEL_ELEMENTS_TREE}: no <list> block to rewrite (kept as-is).")

    return BuildResult(
        root_path=root_path,
        model_elements_path=model_elements_path,
        created_parts=tuple(created_parts),
        part_refs=tuple(part_refs),
        surface_xml=surface_xml,
        visual_xmls=tuple(visual_xmls),
        warnings=tuple(warn.messages),
    )

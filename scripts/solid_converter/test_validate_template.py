#!/usr/bin/env python3
import json
import tempfile
import unittest
from pathlib import Path
import sys


SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

import tree_builder as builder
import validate_template as validator
from tds_materials import FaceMatGroup
from test_tree_builder import _make_template


class ValidateTemplateTests(unittest.TestCase):
    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        self.dir = _make_template(
            Path(self._temp.name),
            visuals=("a.CPlugVisualIndexedTriangles.xml", "b.CPlugVisualIndexedTriangles.xml"),
        )

    def tearDown(self) -> None:
        self._temp.cleanup()

    def test_built_tree_passes(self) -> None:
        builder.build_trees(self.dir, "Box", [FaceMatGroup("Sand", 1), FaceMatGroup("Dirt", 1)])
        stats = validator.validate_tree(self.dir)

        self.assertEqual(stats.failed, 0)
        self.assertEqual(stats.total, 4)

    def test_missing_visual_is_reported(self) -> None:
        builder.build_trees(self.dir, "Box", [FaceMatGroup("Sand", 1), FaceMatGroup("Dirt", 1)])
        (self.dir / "b.CPlugVisualIndexedTriangles.xml").unlink()

        with self.assertLogs(level="WARNING"):
            stats = validator.validate_tree(self.dir)

        self.assertEqual(stats.failed, 1)
        self.assertEqual(stats.failures[0]["path"], "Part_01.CPlugTree.xml")
        self.assertIn("missing visual", stats.failures[0]["reason"])

    def test_undeclared_ref_is_reported(self) -> None:
        builder.build_trees(self.dir, "Box", [FaceMatGroup("Sand", 1), FaceMatGroup("Dirt", 1)])
        part = self.dir / "Part_00.CPlugTree.xml"
        part.write_text(part.read_text().replace('ref="Sand"', 'ref="Lava"'))

        ok, reason = validator.validate_part(part, validator.read_declared_refs(
            self.dir / builder.SOLID_XML
        ))
        self.assertFalse(ok)
        self.assertEqual(reason, "undeclared material ref: Lava")

    def test_unbuilt_template_fails_on_children(self) -> None:
        (self.dir / builder.LEAF_TEMPLATE_TREE).unlink()
        ok, reason = validator.validate_model_elements(self.dir / builder.MODEL_ELEMENTS_TREE)
        self.assertFalse(ok)
        self.assertEqual(reason, "missing child: Model.CPlugTree.xml")

    def test_report_is_written(self) -> None:
        builder.build_trees(self.dir, "Box", [FaceMatGroup("Sand", 1), FaceMatGroup("Dirt", 1)])
        report_path = self.dir / "reports" / "validation.json"
        validator.validate_tree(self.dir, report_path=report_path)

        payload = json.loads(report_path.read_text())
        self.assertEqual(payload["failed"], 0)
        self.assertEqual(payload["passed"], 4)

    def test_main_returns_error_for_missing_dir(self) -> None:
        self.assertEqual(validator.main(["--template-dir", str(self.dir / "missing")]), 1)


if __name__ == "__main__":
    unittest.main()

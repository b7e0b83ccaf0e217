#!/usr/bin/env python3
import tempfile
import unittest
from pathlib import Path
import sys


SCRIPT_DIR = Path(__file__).resolve().parent
if str(SCRIPT_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPT_DIR))

import reference_table as refs


SOLID_XML = """<?xml version="1.0"?>
<gbx class="CPlugSolid">
    <node RefName = "Dirt"/>
    <material refname="sand" />
    <material REFNAME="  Grass  " />
    <material refname="DIRT" />
    <material refname=" " />
</gbx>
"""


class ReferenceTableTests(unittest.TestCase):
    def test_parse_collects_refs_case_insensitively(self) -> None:
        table = refs.parse_declared_refs(SOLID_XML)
        self.assertEqual(list(table), ["Dirt", "sand", "Grass"])
        self.assertIn("SAND", table)
        self.assertIn("grass", table)
        self.assertNotIn("Ice", table)
        self.assertEqual(table.get("dirt"), "Dirt")

    def test_fallback_prefers_sand(self) -> None:
        table = refs.parse_declared_refs(SOLID_XML)
        self.assertEqual(table.fallback(), "sand")

    def test_fallback_without_sand_is_first_declared(self) -> None:
        table = refs.parse_declared_refs('<a refname="Ice"/><a refname="Dirt"/>')
        self.assertEqual(table.fallback(), "Ice")
        self.assertEqual(table.fallback(preferred="dirt"), "Dirt")

    def test_empty_table_has_no_fallback(self) -> None:
        table = refs.parse_declared_refs("<gbx/>")
        self.assertEqual(len(table), 0)
        self.assertIsNone(table.fallback())

    def test_direct_table_keeps_first_spelling(self) -> None:
        table = refs.ReferenceTable(refs=("Ice", "ICE"))
        self.assertEqual(table.get("ice"), "Ice")
        self.assertEqual(table, refs.ReferenceTable(refs=("Ice", "ICE")))

    def test_read_declared_refs_from_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "Template.Solid.xml"
            path.write_text(SOLID_XML, encoding="utf-8")
            table = refs.read_declared_refs(path)
        self.assertEqual(len(table), 3)


if __name__ == "__main__":
    unittest.main()

#!/usr/bin/env python3
"""Material references declared by a template's ``Template.Solid.xml``."""

from __future__ import annotations

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, Optional, Tuple

REFNAME_PATTERN = re.compile(r'refname\s*=\s*"([^"]+)"', re.IGNORECASE)

PREFERRED_FALLBACK = "sand"


@dataclass(frozen=True)
class ReferenceTable:
    """Case-insensitive set of declared refs, kept in document order."""

    refs: Tuple[str, ...] = ()
    _index: Dict[str, str] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: Dict[str, str] = {}
        for ref in self.refs:
            index.setdefault(ref.casefold(), ref)
        object.__setattr__(self, "_index", index)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().casefold() in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self.refs)

    def __len__(self) -> int:
        return len(self.refs)

    def get(self, name: str) -> Optional[str]:
        """The declared spelling of *name*, if declared."""
        return self._index.get(name.strip().casefold())

    def fallback(self, preferred: str = PREFERRED_FALLBACK) -> Optional[str]:
        """*preferred* if declared, else the first declared ref, else None."""
        if not self.refs:
            return None
        match = self.get(preferred)
        if match is not None:
            return match
        return self.refs[0]


def parse_declared_refs(text: str) -> ReferenceTable:
    refs: Dict[str, str] = OrderedDict()
    for match in REFNAME_PATTERN.finditer(text):
        ref = match.group(1).strip()
        if ref:
            refs.setdefault(ref.casefold(), ref)
    return ReferenceTable(refs=tuple(refs.values()))


def read_declared_refs(path: Path) -> ReferenceTable:
    return parse_declared_refs(path.read_text(encoding="utf-8", errors="replace"))

#!/usr/bin/env python3
"""
material_catalog.py
===================

Canonical surface material names understood by 3ds2gbxml / the game.

Lookups are case-insensitive but the generated XML must carry the exact
catalog casing, the downstream compiler compares names case-sensitively.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from tds_materials import FaceMatGroup

KNOWN_MATERIALS: Tuple[str, ...] = (
    "Concrete", "Pavement", "Grass", "Ice", "Metal", "Sand", "Dirt", "Turbo",
    "DirtRoad", "Rubber", "SlidingRubber", "Test", "Rock", "Water", "Wood",
    "Danger", "Asphalt", "WetDirtRoad", "WetAsphalt", "WetPavement",
    "WetGrass", "Snow", "ResonantMetal", "GolfBall", "GolfWall", "GolfGround",
    "Turbo2", "Bumper", "NotCollidable", "FreeWheeling", "TurboRoulette",
)


@dataclass(frozen=True)
class CanonicalName:
    value: str
    known: bool


@dataclass(frozen=True)
class MaterialCatalog:
    names: Tuple[str, ...]
    _index: Dict[str, str] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_index", {name.casefold(): name for name in self.names})

    def lookup(self, name: str) -> Optional[str]:
        return self._index.get(name.strip().casefold())

    def is_known(self, name: str) -> bool:
        return self.lookup(name) is not None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.is_known(name)

    def __len__(self) -> int:
        return len(self.names)


DEFAULT_CATALOG = MaterialCatalog(names=KNOWN_MATERIALS)


def canonicalize(name: str, catalog: MaterialCatalog = DEFAULT_CATALOG) -> CanonicalName:
    """Map a raw material name onto the catalog casing.

    Unknown names get a best-effort "Title" casing (first letter upper, the
    rest lower) and ``known=False`` so the caller can report them.
    """
    trimmed = name.strip()
    canonical = catalog.lookup(trimmed)
    if canonical is not None:
        return CanonicalName(value=canonical, known=True)
    if not trimmed:
        return CanonicalName(value="", known=False)
    return CanonicalName(value=trimmed[0].upper() + trimmed[1:].lower(), known=False)


def material_name_warnings(
    groups: Iterable[FaceMatGroup],
    catalog: MaterialCatalog = DEFAULT_CATALOG,
) -> List[str]:
    """One warning per distinct misspelled-case or unknown material name."""
    warnings: List[str] = []
    seen = set()
    for group in groups:
        used = group.material_name.strip()
        if not used or used.casefold() in seen:
            continue
        seen.add(used.casefold())

        canonical = catalog.lookup(used)
        if canonical is None:
            warnings.append(
                f"Unknown material name: '{used}'. 3ds2gbxml may not recognize it "
                f"and fall back to a default (often Concrete)."
            )
        elif canonical != used:
            warnings.append(
                f"Material casing mismatch: '{used}' -> expected '{canonical}'. "
                f"3ds2gbxml is case-sensitive; rename the material in the 3D editor."
            )
    return warnings


def declared_block_warning(declared: Iterable[str]) -> Optional[str]:
    """Models fed to 3ds2gbxml must not carry 0xA000 material blocks."""
    count = len(list(declared))
    if count == 0:
        return None
    return (
        f"{count} material block(s) (0xA000) detected; the game expects none. "
        f"Re-export the model without material definitions."
    )

"""
Quantity Calculator
===================
Pure arithmetic for the prescription side of a calculation, plus the fixed
dosage-form / unit compatibility table used to narrow package lists.

No unit conversion is attempted beyond the compatibility table: a liquid
prescription in ML is never converted to a package measured in L.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Iterable, Optional

from ndc_navigator.systems.catalog_adapter import normalize_unit
from ndc_navigator.utils.models import PackageRecord

MAX_DAYS_SUPPLY = 365


class DosageFormFamily(str, Enum):
    SOLID = "solid"
    LIQUID = "liquid"
    OTHER = "other"


# Substring -> family. First hit wins, so more specific entries come first.
_FAMILY_KEYWORDS: list[tuple[str, DosageFormFamily]] = [
    ("TABLET", DosageFormFamily.SOLID),
    ("CAPSULE", DosageFormFamily.SOLID),
    ("CAPLET", DosageFormFamily.SOLID),
    ("PILL", DosageFormFamily.SOLID),
    ("LOZENGE", DosageFormFamily.SOLID),
    ("TROCHE", DosageFormFamily.SOLID),
    ("SOLUTION", DosageFormFamily.LIQUID),
    ("SUSPENSION", DosageFormFamily.LIQUID),
    ("SYRUP", DosageFormFamily.LIQUID),
    ("ELIXIR", DosageFormFamily.LIQUID),
    ("LIQUID", DosageFormFamily.LIQUID),
    ("INJECTION", DosageFormFamily.LIQUID),
    ("EMULSION", DosageFormFamily.LIQUID),
    ("DROPS", DosageFormFamily.LIQUID),
]

# Canonical unit -> units that may be dispensed against it.
UNIT_COMPATIBILITY: dict[str, frozenset[str]] = {
    "TABLET": frozenset({"TABLET", "CAPSULE"}),
    "CAPSULE": frozenset({"CAPSULE", "TABLET"}),
    "ML": frozenset({"ML", "L"}),
    "L": frozenset({"L", "ML"}),
    "MG": frozenset({"MG", "GM", "MCG"}),
    "GM": frozenset({"GM", "MG", "MCG"}),
    "MCG": frozenset({"MCG", "MG", "GM"}),
    "UNIT": frozenset({"UNIT"}),
    "PUFF": frozenset({"PUFF", "INHALER"}),
    "PATCH": frozenset({"PATCH"}),
    "SUPPOSITORY": frozenset({"SUPPOSITORY"}),
}


def calculate_total_quantity(
    dose_per_administration: float,
    frequency_per_day: float,
    days_supply: float,
) -> int:
    """
    Total units to dispense, rounded up to a whole unit.
    Raises ValueError for non-positive input or days_supply > 365.
    """
    if dose_per_administration <= 0:
        raise ValueError("dose_per_administration must be greater than 0")
    if frequency_per_day <= 0:
        raise ValueError("frequency_per_day must be greater than 0")
    if days_supply <= 0:
        raise ValueError("days_supply must be greater than 0")
    if days_supply > MAX_DAYS_SUPPLY:
        raise ValueError(f"days_supply cannot exceed {MAX_DAYS_SUPPLY}")
    return math.ceil(dose_per_administration * frequency_per_day * days_supply)


def dosage_form_family(dosage_form: Optional[str]) -> DosageFormFamily:
    text = (dosage_form or "").upper()
    for keyword, family in _FAMILY_KEYWORDS:
        if keyword in text:
            return family
    return DosageFormFamily.OTHER


def are_dosage_forms_compatible(a: Optional[str], b: Optional[str]) -> bool:
    family_a, family_b = dosage_form_family(a), dosage_form_family(b)
    if DosageFormFamily.OTHER in (family_a, family_b):
        # Unclassified forms only match themselves
        return (a or "").upper() == (b or "").upper()
    return family_a == family_b


def filter_by_dosage_form_family(
    packages: Iterable[PackageRecord], dosage_form: Optional[str]
) -> list[PackageRecord]:
    """Packages whose dosage form shares a family with ``dosage_form``; all when unknown."""
    packages = list(packages)
    if not dosage_form:
        return packages
    return [p for p in packages if are_dosage_forms_compatible(p.dosage_form, dosage_form)]


def are_units_compatible(requested: Optional[str], package_unit: Optional[str]) -> bool:
    if not requested or not package_unit:
        return True
    wanted, offered = normalize_unit(requested), normalize_unit(package_unit)
    return offered in UNIT_COMPATIBILITY.get(wanted, frozenset({wanted}))


def format_quantity_with_unit(quantity: float, unit: str) -> str:
    """30, TABLET -> '30 TABLETS'; 1, ML -> '1 ML'."""
    text = f"{quantity:g}"
    unit = unit.upper()
    if quantity != 1 and unit in {"TABLET", "CAPSULE", "PATCH", "VIAL", "KIT", "SYRINGE", "INHALER", "PUFF", "UNIT"}:
        unit += "S" if not unit.endswith("CH") else "ES"
    return f"{text} {unit}"

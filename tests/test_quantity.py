from __future__ import annotations

import math

import pytest

from helpers import make_product
from ndc_navigator.systems.catalog_adapter import map_products
from ndc_navigator.systems.quantity import (
    DosageFormFamily,
    are_dosage_forms_compatible,
    are_units_compatible,
    calculate_total_quantity,
    dosage_form_family,
    filter_by_dosage_form_family,
    format_quantity_with_unit,
)


@pytest.mark.parametrize(
    "dose, frequency, days, expected",
    [(2, 2, 14, 56), (1.5, 2, 30, 90), (1, 1, 30, 30), (0.5, 3, 7, 11), (1, 1, 365, 365)],
)
def test_calculate_total_quantity(dose, frequency, days, expected):
    assert calculate_total_quantity(dose, frequency, days) == expected
    assert calculate_total_quantity(dose, frequency, days) == math.ceil(dose * frequency * days)


@pytest.mark.parametrize(
    "dose, frequency, days",
    [(0, 1, 30), (1, 0, 30), (1, 1, 0), (-1, 1, 30), (1, 1, 366)],
)
def test_calculate_rejects_invalid_input(dose, frequency, days):
    with pytest.raises(ValueError):
        calculate_total_quantity(dose, frequency, days)


def test_dosage_form_families():
    assert dosage_form_family("TABLET, FILM COATED") is DosageFormFamily.SOLID
    assert dosage_form_family("CAPSULE, EXTENDED RELEASE") is DosageFormFamily.SOLID
    assert dosage_form_family("SOLUTION") is DosageFormFamily.LIQUID
    assert dosage_form_family("CREAM") is DosageFormFamily.OTHER
    assert dosage_form_family(None) is DosageFormFamily.OTHER


def test_dosage_form_compatibility():
    assert are_dosage_forms_compatible("TABLET", "CAPSULE")
    assert are_dosage_forms_compatible("SYRUP", "SOLUTION")
    assert not are_dosage_forms_compatible("TABLET", "SOLUTION")
    assert are_dosage_forms_compatible("CREAM", "cream")
    assert not are_dosage_forms_compatible("CREAM", "OINTMENT")


def test_filter_by_dosage_form_family():
    records = map_products(
        [
            make_product(packages=[("68180-513-01", "100 TABLET in 1 BOTTLE", "20100101", None)]),
            make_product(
                product_code="1234-567",
                dosage_form="SOLUTION",
                packages=[("1234-5678-90", "150 mL in 1 BOTTLE", "20100101", None)],
            ),
        ]
    )

    assert [r.dosage_form for r in filter_by_dosage_form_family(records, "TABLET")] == ["TABLET"]
    assert len(filter_by_dosage_form_family(records, None)) == 2


def test_unit_compatibility():
    assert are_units_compatible("tablets", "CAPSULE")
    assert are_units_compatible("ml", "L")
    assert not are_units_compatible("tablet", "ML")
    assert are_units_compatible(None, "ML")


def test_format_quantity_with_unit():
    assert format_quantity_with_unit(30, "tablet") == "30 TABLETS"
    assert format_quantity_with_unit(1, "TABLET") == "1 TABLET"
    assert format_quantity_with_unit(2, "PATCH") == "2 PATCHES"
    assert format_quantity_with_unit(150, "ML") == "150 ML"

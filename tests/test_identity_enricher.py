from __future__ import annotations

import pytest

from ndc_navigator.systems.identity_enricher import (
    are_drug_names_similar,
    deduplicate,
    enrich_identity,
    extract_dosage_form,
    extract_strength,
    merge_by_id,
    merge_drug_information,
    normalize_drug_name,
    parse_drug_name,
    validate_drug_name,
)
from ndc_navigator.utils.models import ResolvedIdentity


def identity(id="1", confidence=0.9, **kwargs) -> ResolvedIdentity:
    kwargs.setdefault("canonical_name", "lisinopril 10 MG Oral Tablet")
    return ResolvedIdentity(id=id, confidence=confidence, **kwargs)


@pytest.mark.parametrize(
    "name, expected",
    [
        ("lisinopril 10 MG Oral Tablet", "TABLET"),
        ("amoxicillin 500 MG Oral Capsule", "CAPSULE"),
        ("amoxicillin 250 MG/5ML Oral Suspension", "SUSPENSION"),
        ("hydrocortisone 1 % Topical Cream", "CREAM"),
        ("albuterol inhaler", "INHALER"),
        ("aspirin", None),
    ],
)
def test_extract_dosage_form(name, expected):
    assert extract_dosage_form(name) == expected


def test_dosage_form_requires_word_boundary():
    assert extract_dosage_form("gelatin free drops") is None


@pytest.mark.parametrize(
    "name, expected",
    [
        ("lisinopril 10 MG Oral Tablet", "10 MG"),
        ("metformin 500mg", "500mg"),
        ("amoxicillin 250 MG/5ML Oral Suspension", "250 MG/5ML"),
        ("insulin glargine 100 UNT/ML Injectable Solution", "100 UNT/ML"),
        ("hydrocortisone 1 % Topical Cream", "1 %"),
        ("levothyroxine 0.025 MG Oral Tablet", "0.025 MG"),
        ("aspirin", None),
    ],
)
def test_extract_strength(name, expected):
    assert extract_strength(name) == expected


def test_parse_drug_name_strips_strength_and_form():
    parsed = parse_drug_name("Lisinopril 10 MG Oral Tablet")

    assert parsed.base_name == "Lisinopril Oral"
    assert parsed.strength == "10 MG"
    assert parsed.dosage_form == "TABLET"


def test_parse_drug_name_collapses_separators():
    assert parse_drug_name("acetaminophen - codeine, 300 MG tablets").base_name == "acetaminophen codeine"


def test_enrich_fills_from_canonical_name_then_input():
    enriched = enrich_identity(identity(canonical_name="lisinopril"), "lisinopril 20 mg tablet")

    assert enriched.dosage_form == "TABLET"
    assert enriched.strength == "20 mg"


def test_enrich_keeps_existing_values():
    original = identity(dosage_form="CAPSULE", strength="5 MG")
    assert enrich_identity(original, "x 10 MG tablet") is original


def test_merge_unions_synonyms_and_keeps_max_confidence():
    first = identity(confidence=0.6, synonyms=frozenset({"a"}))
    second = identity(confidence=0.95, synonyms=frozenset({"b"}), brand_name="Zestril", dosage_form="TABLET")

    merged = merge_drug_information([first, second])

    assert merged.synonyms == frozenset({"a", "b"})
    assert merged.confidence == 0.95
    assert merged.brand_name == "Zestril"
    assert merged.dosage_form == "TABLET"
    assert first.brand_name is None  # inputs are untouched


def test_merge_empty_returns_none():
    assert merge_drug_information([]) is None


def test_deduplicate_and_merge_by_id_keep_first_order():
    records = [identity("1", 0.9), identity("2", 0.8), identity("1", 0.7)]

    assert [r.id for r in deduplicate(records)] == ["1", "2"]
    merged = merge_by_id(records)
    assert [r.id for r in merged] == ["1", "2"]
    assert merged[0].confidence == 0.9


def test_confidence_is_clamped():
    assert identity(confidence=1.7).confidence == 1.0
    assert identity(confidence=-0.2).confidence == 0.0


def test_name_normalization_and_similarity():
    assert normalize_drug_name("  Lisinopril-HCTZ  (Oral) ") == "lisinopril hctz oral"
    assert are_drug_names_similar("Lisinopril", "lisinopril 10 mg")
    assert not are_drug_names_similar("lisinopril", "losartan")


@pytest.mark.parametrize(
    "name, ok",
    [("lisinopril", True), ("a", False), ("x" * 201, False), ("drop table; --", False), ("ibuprofen 200mg (OTC)", True)],
)
def test_validate_drug_name(name, ok):
    assert (validate_drug_name(name) is None) is ok

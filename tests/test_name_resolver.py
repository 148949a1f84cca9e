from __future__ import annotations

import pytest

from helpers import LISINOPRIL, FakeIdentityCatalog
from ndc_navigator.systems.name_resolver import NameResolver, confidence_from_score
from ndc_navigator.utils.models import (
    ApproximateCandidate,
    ConceptGroup,
    ConceptProperties,
    ResolutionMethod,
)
from ndc_navigator.utils.result import Err, ErrorKind, Ok


def props(id: str, name: str, tty: str = "SCD") -> ConceptProperties:
    return ConceptProperties(id=id, name=name, term_type=tty)


@pytest.mark.parametrize(
    "score, rank, expected",
    [
        ("100", "1", 1.0),
        ("80", "1", 0.8),
        ("80", "2", 0.4),
        ("150", "1", 1.0),
        ("-5", "1", 0.0),
        ("abc", "1", 0.5),
        (None, None, 0.5),
        ("90", "0", 0.9),
    ],
)
def test_confidence_from_score(score, rank, expected):
    value = confidence_from_score(score, rank)
    assert value == pytest.approx(expected)
    assert 0.0 <= value <= 1.0


def test_exact_match_has_full_confidence(lisinopril_catalog):
    result = NameResolver(lisinopril_catalog).resolve("lisinopril")

    assert isinstance(result, Ok)
    resolution = result.value
    assert resolution.method is ResolutionMethod.EXACT
    assert resolution.identity.id == "314076"
    assert resolution.identity.confidence == 1.0
    assert resolution.identity.dosage_form == "TABLET"
    assert resolution.identity.strength == "10 MG"
    assert "Lisinopril 10mg Tab" in resolution.identity.synonyms
    # Approximate and spelling never ran
    assert [c[0] for c in lisinopril_catalog.calls] == ["search_by_name", "get_properties"]


def test_approximate_scores_filters_and_dedupes():
    catalog = FakeIdentityCatalog(
        approximate={
            "lisinoprl 10": [
                ApproximateCandidate(id="314076", score="90", rank="1"),
                ApproximateCandidate(id="314076", score="85", rank="1"),
                ApproximateCandidate(id="314077", score="80", rank="1"),
                ApproximateCandidate(id="205326", score="60", rank="2"),   # 0.3, dropped
            ]
        },
        properties={
            "314076": LISINOPRIL,
            "314077": props("314077", "lisinopril 20 MG Oral Tablet"),
            "205326": props("205326", "lisinopril 5 MG Oral Tablet"),
        },
    )

    result = NameResolver(catalog).resolve("lisinoprl 10")

    assert isinstance(result, Ok)
    resolution = result.value
    assert resolution.method is ResolutionMethod.APPROXIMATE
    assert resolution.identity.id == "314076"
    assert resolution.identity.confidence == pytest.approx(0.9)
    assert [a.id for a in resolution.alternatives] == ["314077"]
    assert all(0 <= i.confidence <= 1 for i in [resolution.identity, *resolution.alternatives])


def test_approximate_caps_alternatives():
    candidates = [ApproximateCandidate(id=str(i), score=str(99 - i), rank="1") for i in range(8)]
    catalog = FakeIdentityCatalog(
        approximate={"aspirn": candidates},
        properties={str(i): props(str(i), f"aspirin {i} MG Oral Tablet") for i in range(8)},
    )

    resolution = NameResolver(catalog, max_alternatives=4).resolve("aspirn").value

    assert resolution.identity.id == "0"
    assert [a.id for a in resolution.alternatives] == ["1", "2", "3", "4"]


def test_min_confidence_is_configurable():
    catalog = FakeIdentityCatalog(
        approximate={"foo": [ApproximateCandidate(id="1", score="60", rank="1")]},
        properties={"1": props("1", "foo 1 MG Oral Tablet")},
    )

    assert isinstance(NameResolver(catalog, min_confidence=0.5).resolve("foo"), Ok)
    assert isinstance(NameResolver(catalog, min_confidence=0.7).resolve("foo"), Err)


def test_spelling_applies_penalty():
    catalog = FakeIdentityCatalog(
        exact={"lisinopril": ["314076"]},
        spelling={"lisinoprilll": ["lisinoprill", "lisinopril"]},
        properties={"314076": LISINOPRIL},
    )

    result = NameResolver(catalog).resolve("lisinoprilll")

    assert isinstance(result, Ok)
    assert result.value.method is ResolutionMethod.SPELLING
    assert result.value.identity.confidence == pytest.approx(0.9)
    assert result.value.search_term == "lisinoprilll"


def test_network_failure_in_one_strategy_falls_through():
    catalog = FakeIdentityCatalog(
        approximate={"lisinopril": [ApproximateCandidate(id="314076", score="95", rank="1")]},
        properties={"314076": LISINOPRIL},
        failing=["search_by_name"],
    )

    result = NameResolver(catalog).resolve("lisinopril")

    assert isinstance(result, Ok)
    assert result.value.method is ResolutionMethod.APPROXIMATE


def test_no_match_anywhere_is_identity_not_found():
    catalog = FakeIdentityCatalog()

    result = NameResolver(catalog).resolve("notadrugxyz")

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.IDENTITY_NOT_FOUND
    assert [a["strategy"] for a in result.details["attempts"]] == ["exact", "approximate", "spelling"]


def test_all_strategies_failing_upstream_is_identity_not_found():
    catalog = FakeIdentityCatalog(
        failing=["search_by_name", "get_approximate_matches", "get_spelling_suggestions"]
    )

    result = NameResolver(catalog).resolve("lisinopril")

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.IDENTITY_NOT_FOUND


def test_invalid_name_is_rejected_before_any_call():
    catalog = FakeIdentityCatalog()

    result = NameResolver(catalog).resolve("x")

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.INVALID_INPUT
    assert catalog.calls == []


def test_resolve_identifier(lisinopril_catalog):
    result = NameResolver(lisinopril_catalog).resolve_identifier("314076")

    assert result.value.method is ResolutionMethod.IDENTIFIER
    assert result.value.identity.canonical_name == LISINOPRIL.name

    missing = NameResolver(lisinopril_catalog).resolve_identifier("999")
    assert isinstance(missing, Err)
    assert missing.kind is ErrorKind.IDENTITY_NOT_FOUND


def test_find_related_excludes_source_and_limits():
    members = [props("314076", "lisinopril 10 MG Oral Tablet")] + [
        props(str(i), f"lisinopril {i} MG Oral Tablet") for i in range(12)
    ]
    catalog = FakeIdentityCatalog(
        related={"314076": [ConceptGroup(term_type="SCD", members=members)]}
    )

    result = NameResolver(catalog).find_related("314076")

    assert isinstance(result, Ok)
    assert len(result.value) == 10
    assert "314076" not in {r.id for r in result.value}

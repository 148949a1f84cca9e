from __future__ import annotations

import pytest

from helpers import candidate
from ndc_navigator.systems.package_optimizer import optimize
from ndc_navigator.utils.models import RecommendationSource
from ndc_navigator.utils.result import Err, ErrorKind, Ok


def test_exact_match_wins_with_zero_waste():
    result = optimize(30, [candidate("A", 100), candidate("B", 30), candidate("C", 15)])

    assert isinstance(result, Ok)
    primary = result.value[0]
    assert primary.code == "B"
    assert primary.waste == 0
    assert primary.number_of_packages == 1
    assert primary.reasoning.startswith("Exact match with 30 TABLET package")
    # Exact matches stop the search
    assert [o.code for o in result.value] == ["B"]


def test_exact_match_beats_low_waste_candidates():
    result = optimize(100, [candidate("A", 101), candidate("B", 100), candidate("C", 50)])

    assert result.value[0].code == "B"
    assert result.value[0].waste == 0


def test_85_prefers_single_100_pack():
    result = optimize(85, [candidate("100", 100), candidate("30", 30)])

    primary = result.value[0]
    assert primary.code == "100"
    assert primary.number_of_packages == 1
    assert primary.quantity_to_dispense == 100
    assert primary.waste == 15
    assert primary.waste_percentage == pytest.approx(15.0)
    assert [o.code for o in result.value] == ["100", "30"]
    assert result.value[1].number_of_packages == 3


def test_pure_waste_ranking_when_single_package_preference_disabled():
    result = optimize(85, [candidate("100", 100), candidate("30", 30)], prefer_single_package=False)

    assert [o.code for o in result.value] == ["30", "100"]
    assert result.value[0].quantity_to_dispense == 90


def test_multiple_packages_of_same_size():
    result = optimize(200, [candidate("100", 100), candidate("30", 30)])

    primary = result.value[0]
    assert primary.code == "100"
    assert primary.number_of_packages == 2
    assert primary.quantity_to_dispense == 200
    assert primary.waste == 0
    assert primary.reasoning.startswith("2 packages of 100 TABLET")


def test_inactive_packages_are_never_returned():
    result = optimize(30, [candidate("inactive", 30, active=False), candidate("active", 100)])

    assert [o.code for o in result.value] == ["active"]


def test_no_active_packages():
    result = optimize(30, [candidate("A", 30, active=False)])

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.NO_ACTIVE_PACKAGES


def test_falls_back_to_largest_package_when_all_exceed_threshold():
    result = optimize(10, [candidate("500", 500), candidate("1000", 1000)])

    assert [o.code for o in result.value] == ["1000"]
    assert result.value[0].waste == 990


def test_waste_threshold_is_configurable():
    packages = [candidate("100", 100)]

    assert optimize(75, packages, max_waste_percentage=30.0).value[0].code == "100"
    # 25% waste is over the default cutoff, so it only survives as the fallback
    assert optimize(75, packages).value[0].code == "100"
    assert optimize(75, packages + [candidate("80", 80)]).value[0].code == "80"


@pytest.mark.parametrize("required", [1, 7, 29, 31, 85, 99, 101, 250, 999])
def test_waste_is_never_negative(required):
    packages = [candidate("a", 30), candidate("b", 100), candidate("c", 7.5), candidate("d", 0.1)]

    for option in optimize(required, packages).value:
        assert option.waste >= 0
        assert option.quantity_to_dispense >= required
        assert option.waste == pytest.approx(option.quantity_to_dispense - required)
        assert option.source is RecommendationSource.ALGORITHM


def test_fractional_sizes_do_not_overcount():
    result = optimize(3, [candidate("d", 0.1, unit="ML")])

    assert result.value[0].number_of_packages == 30
    assert result.value[0].waste == 0


def test_invalid_required_quantity():
    result = optimize(0, [candidate("A", 30)])

    assert isinstance(result, Err)
    assert result.kind is ErrorKind.INVALID_INPUT

"""
Package Optimizer
=================
Deterministic selection of the package (repeated N times) that covers the
required quantity with the least waste.

Algorithm:
  1. Only active packages are considered; none -> NO_ACTIVE_PACKAGES.
  2. Packages whose size equals the requirement win outright (waste 0).
  3. Otherwise every active package becomes a candidate:
       number_of_packages = ceil(required / size)
       dispensed          = number_of_packages * size
       waste              = dispensed - required
       waste_percentage   = waste / dispensed * 100
     and candidates at or above ``max_waste_percentage`` are dropped.
  4. If nothing survives, the single largest package is used regardless
     of waste.
  5. Candidates are ranked. The default (``prefer_single_package=True``)
     puts single-container candidates ahead of multi-container ones and
     orders each group by waste percentage, so 85 units from [100, 30]
     gives 1 x 100 rather than 3 x 30. Pure waste-percentage ranking is
     opt-in with ``prefer_single_package=False``.

Candidate arithmetic is vectorised with numpy.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from ndc_navigator.utils.models import PackageCandidate, PackageOption, RecommendationSource
from ndc_navigator.utils.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

MAX_WASTE_PERCENTAGE = 20.0

# Ratios are rounded before ceil so 3 / 0.1 does not become 31 packages.
_RATIO_DECIMALS = 9


def _reasoning(option_size: float, unit: str, packages: int, dispensed: float, waste: float, pct: float) -> str:
    size = f"{option_size:g}"
    if waste == 0 and packages == 1:
        return f"Exact match with {size} {unit} package. Zero waste, optimal selection."
    if packages == 1:
        return (
            f"Single {size} {unit} package provides {dispensed:g} units with "
            f"{waste:g} units ({pct:.1f}%) waste. Minimizes containers and handling."
        )
    return (
        f"{packages} packages of {size} {unit} each provide {dispensed:g} units total with "
        f"{waste:g} units ({pct:.1f}%) waste. Best available option to minimize waste."
    )


def _option(package: PackageCandidate, count: int, required: int) -> PackageOption:
    dispensed = round(count * package.size, 6)
    waste = max(0.0, round(dispensed - required, 6))
    pct = round(waste / dispensed * 100, 2) if dispensed else 0.0
    return PackageOption(
        code=package.code,
        size=package.size,
        unit=package.unit,
        quantity_to_dispense=dispensed,
        number_of_packages=count,
        waste=waste,
        waste_percentage=pct,
        reasoning=_reasoning(package.size, package.unit, count, dispensed, waste, pct),
        source=RecommendationSource.ALGORITHM,
    )


def optimize(
    required_quantity: int,
    packages: Sequence[PackageCandidate],
    max_waste_percentage: float = MAX_WASTE_PERCENTAGE,
    prefer_single_package: bool = True,
) -> Result[list[PackageOption]]:
    """
    Ranked package options for ``required_quantity``.

    Ordering defaults to single container first, then waste percentage.
    Pass ``prefer_single_package=False`` to rank by waste percentage only.
    """
    if required_quantity <= 0:
        return Err(
            ErrorKind.INVALID_INPUT,
            "Required quantity must be greater than 0",
            details={"required_quantity": required_quantity},
        )

    active = [p for p in packages if p.is_active and p.size > 0]
    if not active:
        return Err(
            ErrorKind.NO_ACTIVE_PACKAGES,
            "No active packages available",
            details={"total_packages": len(packages)},
        )

    exact = [p for p in active if p.size == required_quantity]
    if exact:
        logger.info("[Optimizer] Exact match for %d: %s", required_quantity, [p.code for p in exact])
        return Ok([_option(p, 1, required_quantity) for p in exact])

    sizes = np.array([p.size for p in active], dtype=float)
    counts = np.ceil(np.round(required_quantity / sizes, _RATIO_DECIMALS)).astype(int)
    dispensed = counts * sizes
    waste_pct = (dispensed - required_quantity) / dispensed * 100

    keep = np.flatnonzero(waste_pct < max_waste_percentage)
    if keep.size == 0:
        largest = int(np.argmax(sizes))
        logger.info(
            "[Optimizer] No candidate under %.0f%% waste for %d; falling back to largest package %s",
            max_waste_percentage,
            required_quantity,
            active[largest].code,
        )
        keep = np.array([largest])

    options = [_option(active[i], int(counts[i]), required_quantity) for i in keep]
    if prefer_single_package:
        options.sort(key=lambda o: (o.number_of_packages > 1, o.waste_percentage))
    else:
        options.sort(key=lambda o: o.waste_percentage)

    logger.info(
        "[Optimizer] %d candidate(s) for %d; primary %s x%d (%.1f%% waste)",
        len(options),
        required_quantity,
        options[0].code,
        options[0].number_of_packages,
        options[0].waste_percentage,
    )
    return Ok(options)

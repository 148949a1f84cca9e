"""
Advisory Recommender
====================
Produces the final ``Recommendation`` for a prescription.

  1. No active packages            -> NO_ACTIVE_PACKAGES (nothing to advise on)
  2. Advisory service unavailable  -> deterministic optimizer
  3. One advisory call; the reply must
       - match the response schema (checked by the service)
       - name an active package from the request with the same size
       - dispense at least the required quantity
       - not add waste when an exact-size package exists
     otherwise                    -> deterministic optimizer

Advisory errors never leave this module. The returned metadata records
which source produced the primary package and whether a fallback happened.
"""

from __future__ import annotations

import logging
import math
import time
from typing import Optional

from ndc_navigator.systems.advisory_service import AdvisoryReply, AdvisoryService
from ndc_navigator.systems.package_optimizer import MAX_WASTE_PERCENTAGE, optimize
from ndc_navigator.utils.models import (
    AdvisoryAlternative,
    AdvisoryPick,
    AdvisoryRequest,
    AIInsights,
    CostEfficiency,
    PackageCandidate,
    PackageOption,
    Recommendation,
    RecommendationMetadata,
    RecommendationSource,
)
from ndc_navigator.utils.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3


def _advised_option(
    pick: AdvisoryPick | AdvisoryAlternative,
    packages: dict[str, PackageCandidate],
    required: int,
) -> Optional[PackageOption]:
    """Map an advised package onto the catalog; None when it is not dispensable."""
    package = packages.get(pick.code)
    if package is None or not package.is_active:
        return None
    if not math.isclose(pick.size, package.size):
        return None
    if pick.quantity_to_dispense < required:
        return None

    count = max(1, math.ceil(round(pick.quantity_to_dispense / package.size, 9)))
    dispensed = round(count * package.size, 6)
    waste = max(0.0, round(dispensed - required, 6))
    return PackageOption(
        code=package.code,
        size=package.size,
        unit=package.unit,
        quantity_to_dispense=dispensed,
        number_of_packages=count,
        waste=waste,
        waste_percentage=round(waste / dispensed * 100, 2),
        reasoning=pick.reasoning or "Advisory alternative",
        source=RecommendationSource.AI,
        confidence=pick.confidence_score,
    )


class AdvisoryRecommender:
    def __init__(
        self,
        service: Optional[AdvisoryService] = None,
        max_waste_percentage: float = MAX_WASTE_PERCENTAGE,
        prefer_single_package: bool = True,
        max_alternatives: int = MAX_ALTERNATIVES,
    ):
        self.service = service
        self.max_waste_percentage = max_waste_percentage
        self.prefer_single_package = prefer_single_package
        self.max_alternatives = max_alternatives

    @property
    def advisory_available(self) -> bool:
        return self.service is not None and self.service.is_available()

    def recommend(self, request: AdvisoryRequest) -> Result[Recommendation]:
        start = time.time()
        required = request.prescription.quantity_needed
        packages = request.available_packages

        if not any(p.is_active for p in packages):
            return Err(
                ErrorKind.NO_ACTIVE_PACKAGES,
                "No active packages available",
                details={"total_packages": len(packages)},
            )

        if not self.advisory_available:
            logger.info("[Recommender] Advisory unavailable, using optimizer")
            return self._algorithmic(request, start)

        reply = self.service.request_recommendation(request)
        if isinstance(reply, Err):
            logger.warning("[Recommender] Advisory failed (%s), falling back", reply.message)
            return self._algorithmic(request, start)

        recommendation = self._from_reply(reply.value, request, start)
        if recommendation is None:
            logger.warning(
                "[Recommender] Advisory picked %s which is not dispensable, falling back",
                reply.value.response.primary_recommendation.code,
            )
            return self._algorithmic(request, start, cost=reply.value.cost)
        return Ok(recommendation)

    # ------------------------------------------------------------------

    def _algorithmic(
        self, request: AdvisoryRequest, start: float, cost: Optional[float] = None
    ) -> Result[Recommendation]:
        options = optimize(
            request.prescription.quantity_needed,
            request.available_packages,
            max_waste_percentage=self.max_waste_percentage,
            prefer_single_package=self.prefer_single_package,
        )
        if isinstance(options, Err):
            return options
        return Ok(
            Recommendation(
                primary=options.value[0],
                alternatives=options.value[1 : 1 + self.max_alternatives],
                metadata=RecommendationMetadata(
                    used_ai=False,
                    algorithmic_fallback=True,
                    execution_time_ms=round((time.time() - start) * 1000, 2),
                    cost=cost,
                ),
            )
        )

    def _from_reply(
        self, reply: AdvisoryReply, request: AdvisoryRequest, start: float
    ) -> Optional[Recommendation]:
        response = reply.response
        required = request.prescription.quantity_needed
        by_code = {p.code: p for p in request.available_packages}

        primary = _advised_option(response.primary_recommendation, by_code, required)
        if primary is None:
            return None
        exact_available = any(p.is_active and p.size == required for p in request.available_packages)
        if exact_available and primary.waste > 0:
            # An exact-size package always beats a wasteful one
            return None

        alternatives = []
        for alt in response.alternatives:
            option = _advised_option(alt, by_code, required)
            if option is None or option.code == primary.code:
                logger.debug("[Recommender] Dropping advised alternative %s", alt.code)
                continue
            alternatives.append(option)

        insights = AIInsights(
            factors=response.reasoning.factors,
            considerations=response.reasoning.considerations,
            rationale=response.reasoning.rationale,
            cost_efficiency=(
                CostEfficiency(
                    estimated_waste=response.cost_efficiency.estimated_waste,
                    rating=response.cost_efficiency.rating,
                )
                if response.cost_efficiency
                else None
            ),
        )
        return Recommendation(
            primary=primary,
            alternatives=alternatives[: self.max_alternatives],
            ai_insights=insights,
            metadata=RecommendationMetadata(
                used_ai=True,
                algorithmic_fallback=False,
                execution_time_ms=round((time.time() - start) * 1000, 2),
                cost=reply.cost,
            ),
        )

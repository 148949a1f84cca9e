"""
Pipeline Orchestrator
=====================
Wires the resolver, catalog, quantity calculator and recommender into the
single ``calculate`` entry point.

Flow:
  1. Resolve the drug name (or identifier) to a canonical identity
  2. Compute the total quantity from the structured prescription
  3. Fetch package records for the identity
  4. Exclude inactive / discontinued packages (reported, not errors)
  5. Narrow to packages whose dosage form matches the prescription
  6. Recommend packages (advisory layer with optimizer fallback)

Every step appends to an explanation trail. Failures come back as
``Err`` carrying a stable error code and the trail accumulated so far.

Usage:
    from ndc_navigator.pipeline import build_engine
    engine = build_engine(Settings.from_env())
    result = engine.calculate("lisinopril 10 mg", PrescriptionRequirement(...))
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional

import httpx
from pydantic import ValidationError

from ndc_navigator.systems.advisory_recommender import AdvisoryRecommender
from ndc_navigator.systems.advisory_service import AdvisoryService
from ndc_navigator.systems.catalog_adapter import CatalogAdapter, describe_exclusion, filter_active
from ndc_navigator.systems.name_resolver import NameResolver
from ndc_navigator.systems.quantity import (
    are_units_compatible,
    calculate_total_quantity,
    filter_by_dosage_form_family,
    format_quantity_with_unit,
)
from ndc_navigator.utils.cache import CacheBackend, InMemoryCache, identity_key, packages_key
from ndc_navigator.utils.circuit_breaker import CircuitBreaker
from ndc_navigator.utils.config import Settings
from ndc_navigator.utils.llm_client import LLMClient
from ndc_navigator.utils.models import (
    AdvisoryDrug,
    AdvisoryPrescription,
    AdvisoryRequest,
    CalculationResult,
    ExcludedPackage,
    ExplanationTrail,
    PackageCandidate,
    PackageFilters,
    PackageRecord,
    PrescriptionRequirement,
    ResolutionResult,
    ResolvedIdentity,
)
from ndc_navigator.utils.openfda_client import OpenFDAClient
from ndc_navigator.utils.remote_caller import RemoteCaller
from ndc_navigator.utils.result import Err, ErrorKind, Ok, Result
from ndc_navigator.utils.rxnorm_client import RxNormClient

logger = logging.getLogger(__name__)


def looks_like_identifier(value: str) -> bool:
    return value.strip().isdigit()


@dataclass
class NDCEngine:
    resolver: NameResolver
    catalog: CatalogAdapter
    recommender: AdvisoryRecommender
    settings: Settings = field(default_factory=Settings)
    cache: Optional[CacheBackend] = None

    # ------------------------------------------------------------------
    # Cached lookups
    # ------------------------------------------------------------------

    def _cache_get(self, key: str) -> Optional[dict]:
        if self.cache is None:
            return None
        try:
            return self.cache.get(key)
        except Exception as e:
            logger.warning("[Cache] get %s failed: %s", key, e)
            return None

    def _cache_set(self, key: str, value) -> None:
        if self.cache is None:
            return
        try:
            self.cache.set(key, value, self.settings.cache_ttl_s)
        except Exception as e:
            logger.warning("[Cache] set %s failed: %s", key, e)

    def _cache_invalidate(self, key: str) -> None:
        if self.cache is None:
            return
        try:
            self.cache.invalidate(key)
        except Exception as e:
            logger.warning("[Cache] invalidate %s failed: %s", key, e)

    def normalize(self, name_or_id: str) -> Result[ResolutionResult]:
        key = identity_key(name_or_id)
        cached = self._cache_get(key)
        if cached is not None:
            try:
                return Ok(ResolutionResult.model_validate(cached))
            except ValidationError:
                logger.warning("[Cache] Discarding unreadable entry %s", key)
                self._cache_invalidate(key)

        if looks_like_identifier(name_or_id):
            result = self.resolver.resolve_identifier(name_or_id.strip())
        else:
            result = self.resolver.resolve(name_or_id)
        if isinstance(result, Ok):
            self._cache_set(key, result.value.model_dump(mode="json"))
        return result

    def packages_for(self, identity: ResolvedIdentity) -> Result[list[PackageRecord]]:
        key = packages_key(identity.id)
        cached = self._cache_get(key)
        if cached is not None:
            try:
                return Ok([PackageRecord.model_validate(p) for p in cached["packages"]])
            except (ValidationError, KeyError, TypeError):
                logger.warning("[Cache] Discarding unreadable entry %s", key)
                self._cache_invalidate(key)

        result = self.catalog.fetch_packages(
            identity, PackageFilters(limit=self.settings.package_search_limit)
        )
        if isinstance(result, Ok) and result.value:
            self._cache_set(key, {"packages": [p.model_dump(mode="json") for p in result.value]})
        return result

    def related(self, identity_id: str) -> Result[list[ResolvedIdentity]]:
        return self.resolver.find_related(identity_id)

    # ------------------------------------------------------------------
    # Main entry point
    # ------------------------------------------------------------------

    def calculate(
        self, identity_name_or_id: str, requirement: PrescriptionRequirement
    ) -> Result[CalculationResult]:
        start_time = time.time()
        trail = ExplanationTrail()
        warnings: list[str] = []

        def fail(err: Err) -> Err:
            logger.error("[Pipeline] Failed with %s: %s", err.kind.value, err.message)
            return err.with_explanations(list(trail.entries))

        # ---- Step 1: Identity resolution ----
        logger.info("[Pipeline] Step 1: Resolving '%s'", identity_name_or_id)
        resolution = self.normalize(identity_name_or_id)
        if isinstance(resolution, Err):
            trail.add(
                "normalization",
                f"Could not resolve '{identity_name_or_id}'",
                error=resolution.kind.value,
            )
            return fail(resolution)

        identity = resolution.value.identity
        trail.add(
            "normalization",
            f"Resolved '{identity_name_or_id}' to {identity.canonical_name} ({identity.id})",
            method=resolution.value.method.value,
            confidence=identity.confidence,
        )
        if identity.confidence < self.settings.low_confidence_warning:
            warnings.append(
                f"Drug name confidence is {identity.confidence * 100:.0f}%. "
                f"Please verify: {identity.canonical_name}"
            )

        # ---- Step 2: Quantity ----
        try:
            total_quantity = calculate_total_quantity(
                requirement.dose_per_administration,
                requirement.frequency_per_day,
                requirement.days_supply,
            )
        except ValueError as e:
            return fail(Err(ErrorKind.INVALID_INPUT, str(e)))
        unit_label = requirement.unit or identity.dosage_form or "unit"
        trail.add(
            "quantity_calculation",
            f"{requirement.dose_per_administration:g} x {requirement.frequency_per_day:g}/day x "
            f"{requirement.days_supply} days = {format_quantity_with_unit(total_quantity, unit_label)}",
            total_quantity=total_quantity,
        )

        # ---- Step 3: Packages ----
        logger.info("[Pipeline] Step 3: Fetching packages for %s", identity.id)
        packages = self.packages_for(identity)
        if isinstance(packages, Err):
            trail.add("fetch", "Packaging catalog request failed", error=packages.message)
            return fail(packages)
        if not packages.value:
            trail.add("fetch", f"No packages found for {identity.id}")
            return fail(
                Err(
                    ErrorKind.NO_PACKAGES_FOUND,
                    f"No packages found for {identity.canonical_name}",
                    details={"identity_id": identity.id},
                )
            )
        records = packages.value
        trail.add("fetch", f"Found {len(records)} package(s)", count=len(records))
        identity = self._with_catalog_names(identity, records)

        # ---- Step 4: Active packages ----
        active = filter_active(records)
        active_codes = {p.code for p in active}
        excluded = [
            ExcludedPackage(
                code=p.code, reason=describe_exclusion(p), marketing_status=p.marketing_status
            )
            for p in records
            if p.code not in active_codes
        ]
        trail.add(
            "filter_active",
            f"{len(active)} active, {len(excluded)} excluded",
            active=len(active),
            excluded=len(excluded),
        )
        if not active:
            return fail(
                Err(
                    ErrorKind.NO_ACTIVE_PACKAGES,
                    f"All {len(records)} package(s) for {identity.canonical_name} are inactive",
                    details={
                        "identity_id": identity.id,
                        "excluded": [e.model_dump(mode="json") for e in excluded],
                    },
                )
            )

        # ---- Step 5: Dosage form ----
        target_form = identity.dosage_form or requirement.unit
        matching = filter_by_dosage_form_family(active, target_form)
        if not matching:
            warnings.append(
                f"No packages match dosage form {target_form}; showing all active packages"
            )
            matching = active
        trail.add(
            "filter_dosage_form",
            f"{len(matching)} package(s) compatible with {target_form or 'any dosage form'}",
            dosage_form=target_form,
        )
        mismatched = [p.code for p in matching if not are_units_compatible(requirement.unit, p.size.unit)]
        if mismatched:
            warnings.append(
                f"{len(mismatched)} package(s) are measured in a unit different from {requirement.unit}"
            )

        # ---- Step 6: Recommendation ----
        logger.info("[Pipeline] Step 6: Recommending packages for %d units", total_quantity)
        request = AdvisoryRequest(
            drug=AdvisoryDrug(
                generic_name=identity.generic_name or identity.canonical_name,
                id=identity.id,
                brand_name=identity.brand_name,
                dosage_form=identity.dosage_form,
                strength=identity.strength,
            ),
            prescription=AdvisoryPrescription(
                directions=requirement.describe(),
                days_supply=requirement.days_supply,
                quantity_needed=total_quantity,
            ),
            available_packages=[PackageCandidate.from_record(p) for p in matching],
        )
        if self.settings.advisory_enabled and not self.recommender.advisory_available:
            warnings.append("AI recommendation unavailable; using algorithmic selection")

        recommended = self.recommender.recommend(request)
        if isinstance(recommended, Err):
            trail.add("package_selection", recommended.message)
            return fail(recommended)
        recommendation = recommended.value
        primary = recommendation.primary
        trail.add(
            "package_selection",
            primary.reasoning,
            code=primary.code,
            number_of_packages=primary.number_of_packages,
            waste=primary.waste,
        )
        if recommendation.metadata.used_ai:
            trail.add(
                "ai_enhancement",
                "Advisory recommendation accepted",
                cost=recommendation.metadata.cost,
            )
        elif self.settings.advisory_enabled:
            trail.add("ai_enhancement", "Advisory recommendation unavailable; optimizer used")

        if primary.waste_percentage >= self.settings.max_waste_percentage:
            warnings.append(
                f"Significant overfill: {primary.waste:g} units "
                f"({primary.waste_percentage:.1f}%) will be left over"
            )
        if primary.number_of_packages > 1:
            warnings.append(f"Requires {primary.number_of_packages} packages of {primary.code}")

        dispensed = primary.quantity_to_dispense
        underfill = max(0.0, total_quantity - dispensed)
        elapsed_ms = round((time.time() - start_time) * 1000, 2)
        logger.info(
            "[Pipeline] Complete in %.0f ms: %s x%d (%s)",
            elapsed_ms,
            primary.code,
            primary.number_of_packages,
            primary.source.value,
        )
        return Ok(
            CalculationResult(
                identity=identity,
                total_quantity=total_quantity,
                recommended_packages=[primary],
                overfill_percentage=primary.waste_percentage,
                underfill_percentage=round(underfill / total_quantity * 100, 2),
                warnings=warnings,
                excluded=excluded,
                explanations=list(trail.entries),
                recommendation=recommendation,
                alternatives=resolution.value.alternatives,
                execution_time_ms=elapsed_ms,
            )
        )

    @staticmethod
    def _with_catalog_names(identity: ResolvedIdentity, records: list[PackageRecord]) -> ResolvedIdentity:
        if identity.generic_name and identity.brand_name:
            return identity
        generic = identity.generic_name or next((r.generic_name for r in records if r.generic_name), None)
        brand = identity.brand_name or next((r.brand_name for r in records if r.brand_name), None)
        return identity.model_copy(update={"generic_name": generic, "brand_name": brand})


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------

def build_engine(
    settings: Settings,
    transport: Optional[httpx.BaseTransport] = None,
    cache: Optional[CacheBackend] = None,
    breaker: Optional[CircuitBreaker] = None,
) -> NDCEngine:
    """Construct an engine with its clients; the caller owns their lifecycle."""
    def caller(service: str, base_url: str) -> RemoteCaller:
        return RemoteCaller(
            httpx.Client(base_url=base_url, timeout=settings.http_timeout_s, transport=transport),
            service=service,
            max_retries=settings.max_retries,
            base_delay_s=settings.retry_base_delay_s,
            multiplier=settings.retry_backoff_multiplier,
            timeout_s=settings.http_timeout_s,
        )

    resolver = NameResolver(
        RxNormClient(caller("RxNorm", settings.rxnorm_base_url)),
        min_confidence=settings.min_confidence,
        spelling_penalty=settings.spelling_penalty,
        max_alternatives=settings.max_alternatives,
        approximate_max_entries=settings.approximate_max_entries,
    )
    catalog = CatalogAdapter(
        OpenFDAClient(caller("openFDA", settings.openfda_base_url), api_key=settings.openfda_api_key)
    )

    llm = None
    if settings.advisory_configured:
        llm = LLMClient(
            api_key=settings.anthropic_api_key,
            model=settings.advisory_model,
            max_tokens=settings.advisory_max_tokens,
            temperature=settings.advisory_temperature,
            timeout_s=settings.advisory_timeout_s,
        )
    service = AdvisoryService(
        llm,
        breaker or CircuitBreaker(settings.circuit_failure_threshold, settings.circuit_reset_timeout_s),
        enabled=settings.advisory_enabled,
    )
    recommender = AdvisoryRecommender(
        service,
        max_waste_percentage=settings.max_waste_percentage,
        prefer_single_package=settings.prefer_single_package,
        max_alternatives=settings.max_recommendation_alternatives,
    )
    if cache is None and settings.cache_enabled:
        cache = InMemoryCache()
    return NDCEngine(resolver, catalog, recommender, settings, cache)

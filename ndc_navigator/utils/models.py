"""
Shared Pydantic models used across the resolver, catalog, optimizer and
advisory layers. These form the contracts between systems; don't change a
field without updating every consumer.

Identity and package records are frozen: enrichment and merging build new
records with ``model_copy(update=...)``.
"""

from __future__ import annotations

import math
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ResolutionMethod(str, Enum):
    EXACT = "exact"
    APPROXIMATE = "approximate"
    SPELLING = "spelling"
    IDENTIFIER = "identifier"


class MarketingState(str, Enum):
    ACTIVE = "active"
    DISCONTINUED = "discontinued"
    EXPIRED = "expired"
    UNKNOWN = "unknown"        # No marketing dates; treated as inactive


class RecommendationSource(str, Enum):
    ALGORITHM = "algorithm"
    AI = "ai"


def clamp_confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return min(max(number, 0.0), 1.0)


# ---------------------------------------------------------------------------
# Identity catalog (RxNorm) shapes
# ---------------------------------------------------------------------------

class ApproximateCandidate(BaseModel):
    id: str
    score: Optional[str] = None     # RxNav returns score/rank as strings
    rank: Optional[str] = None


class ConceptProperties(BaseModel):
    id: str
    name: str
    term_type: str = ""
    synonym: Optional[str] = None


class ConceptGroup(BaseModel):
    term_type: str
    members: list[ConceptProperties] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Resolved identity
# ---------------------------------------------------------------------------

class ResolvedIdentity(BaseModel):
    """
    Canonical drug concept produced by the name resolver.
    Confidence is clamped to [0, 1] on construction.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    canonical_name: str
    dosage_form: Optional[str] = None
    strength: Optional[str] = None
    term_type: str = ""
    synonyms: frozenset[str] = Field(default_factory=frozenset)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    generic_name: Optional[str] = None
    brand_name: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)


class ResolutionResult(BaseModel):
    identity: ResolvedIdentity
    alternatives: list[ResolvedIdentity] = Field(default_factory=list)
    method: ResolutionMethod
    search_term: str
    execution_time_ms: float = 0.0


# ---------------------------------------------------------------------------
# Packaging catalog (openFDA) shapes
# ---------------------------------------------------------------------------

class ActiveIngredient(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    strength: str = ""


class CatalogPackaging(BaseModel):
    package_code: str
    description: str = ""
    marketing_start_date: Optional[str] = None
    marketing_end_date: Optional[str] = None


class CatalogProduct(BaseModel):
    """One product entry from the packaging catalog, before normalization."""
    product_code: str
    generic_name: str = ""
    brand_name: Optional[str] = None
    dosage_form: str = ""
    route: list[str] = Field(default_factory=list)
    active_ingredients: list[ActiveIngredient] = Field(default_factory=list)
    packaging: list[CatalogPackaging] = Field(default_factory=list)
    labeler: str = ""
    product_type: str = ""
    application_number: Optional[str] = None
    identity_ids: list[str] = Field(default_factory=list)


class PackageSize(BaseModel):
    model_config = ConfigDict(frozen=True)

    quantity: float = Field(gt=0)
    unit: str
    raw_text: str = ""


class MarketingStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    is_active: bool
    status: MarketingState
    start_date: Optional[str] = None    # ISO YYYY-MM-DD
    end_date: Optional[str] = None


class PackageRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str                           # 11-digit 5-4-2 package code
    product_code: str
    generic_name: str
    brand_name: Optional[str] = None
    dosage_form: str
    route: list[str] = Field(default_factory=list)
    size: PackageSize
    active_ingredients: list[ActiveIngredient] = Field(default_factory=list)
    marketing_status: MarketingStatus
    labeler: str = ""
    identity_id: Optional[str] = None


class PackageFilters(BaseModel):
    dosage_form: Optional[str] = None
    active_only: bool = False
    limit: int = Field(default=100, ge=1, le=1000)
    skip: int = Field(default=0, ge=0)


class PackageCandidate(BaseModel):
    """Flattened package view shared by the optimizer and the advisory request."""
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    code: str
    size: float = Field(gt=0)
    unit: str
    labeler: str = ""
    is_active: bool = True

    @classmethod
    def from_record(cls, record: PackageRecord) -> "PackageCandidate":
        return cls(
            code=record.code,
            size=record.size.quantity,
            unit=record.size.unit,
            labeler=record.labeler,
            is_active=record.marketing_status.is_active,
        )


# ---------------------------------------------------------------------------
# Prescription
# ---------------------------------------------------------------------------

class PrescriptionRequirement(BaseModel):
    dose_per_administration: float = Field(gt=0)
    frequency_per_day: float = Field(gt=0)
    days_supply: int = Field(ge=1, le=365)
    unit: Optional[str] = None          # e.g. "tablet"; narrows dosage forms
    directions: Optional[str] = None

    @property
    def total_quantity(self) -> int:
        return math.ceil(self.dose_per_administration * self.frequency_per_day * self.days_supply)

    def describe(self) -> str:
        if self.directions:
            return self.directions
        unit = self.unit or "unit"
        return (
            f"Take {self.dose_per_administration:g} {unit}(s) "
            f"{self.frequency_per_day:g} time(s) daily for {self.days_supply} days"
        )


# ---------------------------------------------------------------------------
# Recommendation
# ---------------------------------------------------------------------------

class PackageOption(BaseModel):
    code: str
    size: float
    unit: str
    quantity_to_dispense: float
    number_of_packages: int = Field(ge=1)
    waste: float = Field(ge=0)
    waste_percentage: float = Field(ge=0)
    reasoning: str
    source: RecommendationSource = RecommendationSource.ALGORITHM
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class CostEfficiency(BaseModel):
    estimated_waste: float
    rating: Literal["low", "medium", "high"]


class AIInsights(BaseModel):
    factors: list[str] = Field(default_factory=list)
    considerations: list[str] = Field(default_factory=list)
    rationale: str = ""
    cost_efficiency: Optional[CostEfficiency] = None


class RecommendationMetadata(BaseModel):
    used_ai: bool = False
    algorithmic_fallback: bool = False
    execution_time_ms: float = 0.0
    cost: Optional[float] = None


class Recommendation(BaseModel):
    primary: PackageOption
    alternatives: list[PackageOption] = Field(default_factory=list)
    ai_insights: Optional[AIInsights] = None
    metadata: RecommendationMetadata = Field(default_factory=RecommendationMetadata)


# ---------------------------------------------------------------------------
# Advisory wire contract (camelCase JSON)
# ---------------------------------------------------------------------------

class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AdvisoryDrug(_Wire):
    generic_name: str
    id: str
    brand_name: Optional[str] = None
    dosage_form: Optional[str] = None
    strength: Optional[str] = None


class AdvisoryPrescription(_Wire):
    directions: str
    days_supply: int
    quantity_needed: int


class AdvisoryContext(_Wire):
    preferences: list[str] = Field(default_factory=list)
    clinical_notes: Optional[str] = None


class AdvisoryRequest(_Wire):
    drug: AdvisoryDrug
    prescription: AdvisoryPrescription
    available_packages: list[PackageCandidate]
    context: Optional[AdvisoryContext] = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class _StrictWire(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, strict=True, extra="ignore",
    )


class AdvisoryPick(_StrictWire):
    code: str = Field(min_length=1)
    size: float = Field(gt=0)
    unit: str = Field(min_length=1)
    quantity_to_dispense: float = Field(gt=0)
    reasoning: str = Field(min_length=1)
    confidence_score: float = Field(ge=0.0, le=1.0)


class AdvisoryAlternative(_StrictWire):
    code: str = Field(min_length=1)
    size: float = Field(gt=0)
    unit: str = Field(min_length=1)
    quantity_to_dispense: float = Field(gt=0)
    reasoning: str = ""
    confidence_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class AdvisoryReasoning(_StrictWire):
    factors: list[str]
    considerations: list[str]
    rationale: str


class AdvisoryCostEfficiency(_StrictWire):
    estimated_waste: float
    rating: Literal["low", "medium", "high"]


class AdvisoryResponse(_StrictWire):
    """Shape the advisory service must return; anything else fails validation."""
    primary_recommendation: AdvisoryPick
    alternatives: list[AdvisoryAlternative]
    reasoning: AdvisoryReasoning
    cost_efficiency: Optional[AdvisoryCostEfficiency] = None


# ---------------------------------------------------------------------------
# Explanation trail and final result
# ---------------------------------------------------------------------------

class Explanation(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: str
    description: str
    details: Optional[dict[str, Any]] = None


class ExplanationTrail:
    """Append-only list of pipeline explanations."""

    def __init__(self) -> None:
        self._entries: list[Explanation] = []

    def add(self, step: str, description: str, **details: Any) -> Explanation:
        entry = Explanation(step=step, description=description, details=details or None)
        self._entries.append(entry)
        return entry

    @property
    def entries(self) -> tuple[Explanation, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


class ExcludedPackage(BaseModel):
    code: str
    reason: str
    marketing_status: MarketingStatus


class CalculationResult(BaseModel):
    identity: ResolvedIdentity
    total_quantity: int
    recommended_packages: list[PackageOption]
    overfill_percentage: float = 0.0
    underfill_percentage: float = 0.0
    warnings: list[str] = Field(default_factory=list)
    excluded: list[ExcludedPackage] = Field(default_factory=list)
    explanations: list[Explanation] = Field(default_factory=list)
    recommendation: Recommendation
    alternatives: list[ResolvedIdentity] = Field(default_factory=list)
    execution_time_ms: float = 0.0

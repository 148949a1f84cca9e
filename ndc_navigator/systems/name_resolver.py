"""
Name Resolver
=============
Turns a raw drug name into a confidence-scored ``ResolvedIdentity``.

Strategies run strictly in order and stop at the first success:
  1. exact        - literal name lookup, confidence 1.0
  2. approximate  - fuzzy candidates, confidence = clamp(score/100) * min(1/rank, 1)
  3. spelling     - spelling suggestions, each retried through the exact
                    strategy; confidence scaled by the spelling penalty

Each strategy returns a Result. A miss or an upstream failure in one
strategy is logged and the next one runs; only when all three are
exhausted does resolution fail with IDENTITY_NOT_FOUND. The resolver never
returns a guess below the minimum confidence.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol, Sequence

from ndc_navigator.systems.identity_enricher import (
    enrich_identity,
    filter_by_confidence,
    merge_by_id,
    sort_by_confidence,
    validate_drug_name,
)
from ndc_navigator.utils.models import (
    ApproximateCandidate,
    ConceptGroup,
    ConceptProperties,
    ResolutionMethod,
    ResolutionResult,
    ResolvedIdentity,
    clamp_confidence,
)
from ndc_navigator.utils.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.5
SPELLING_PENALTY = 0.9
MAX_ALTERNATIVES = 4
APPROXIMATE_MAX_ENTRIES = 10
EXACT_MAX_ENTRIES = 5
MAX_RELATED = 10
RELATED_TERM_TYPES = ("SCD", "SBD")   # Semantic clinical / branded drug
UNPARSEABLE_CONFIDENCE = 0.5


class IdentityCatalog(Protocol):
    def search_by_name(self, name: str, max_entries: Optional[int] = None) -> Result[list[str]]: ...

    def get_approximate_matches(
        self, term: str, max_entries: int = 10, option: int = 1
    ) -> Result[list[ApproximateCandidate]]: ...

    def get_spelling_suggestions(self, name: str) -> Result[list[str]]: ...

    def get_properties(self, identity_id: str) -> Result[Optional[ConceptProperties]]: ...

    def get_related_concepts(
        self, identity_id: str, term_types: Sequence[str]
    ) -> Result[list[ConceptGroup]]: ...


def confidence_from_score(score: Optional[str], rank: Optional[str]) -> float:
    """clamp(score/100, 0, 1) * min(1/rank, 1); unparseable input scores 0.5."""
    try:
        score_value = float(score)
        rank_value = float(rank)
    except (TypeError, ValueError):
        return UNPARSEABLE_CONFIDENCE
    normalized = clamp_confidence(score_value / 100)
    rank_factor = min(1 / rank_value, 1.0) if rank_value > 0 else 1.0
    return clamp_confidence(normalized * rank_factor)


def identity_from_properties(props: ConceptProperties, confidence: float) -> ResolvedIdentity:
    synonyms = {props.name}
    if props.synonym:
        synonyms.add(props.synonym)
    return ResolvedIdentity(
        id=props.id,
        canonical_name=props.name,
        term_type=props.term_type,
        synonyms=frozenset(synonyms),
        confidence=confidence,
    )


def _not_found(term: str, strategy: str, **details) -> Err:
    return Err(
        ErrorKind.IDENTITY_NOT_FOUND,
        f"No {strategy} match for '{term}'",
        details={"search_term": term, "strategy": strategy, **details},
    )


class NameResolver:
    def __init__(
        self,
        catalog: IdentityCatalog,
        min_confidence: float = MIN_CONFIDENCE,
        spelling_penalty: float = SPELLING_PENALTY,
        max_alternatives: int = MAX_ALTERNATIVES,
        approximate_max_entries: int = APPROXIMATE_MAX_ENTRIES,
    ):
        self.catalog = catalog
        self.min_confidence = min_confidence
        self.spelling_penalty = spelling_penalty
        self.max_alternatives = max_alternatives
        self.approximate_max_entries = approximate_max_entries

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def resolve(self, name: str) -> Result[ResolutionResult]:
        invalid = validate_drug_name(name)
        if invalid:
            return Err(ErrorKind.INVALID_INPUT, invalid, details={"search_term": name})

        term = name.strip()
        start = time.time()
        strategies: list[tuple[str, Callable[[str], Result[ResolutionResult]]]] = [
            ("exact", self.exact_strategy),
            ("approximate", self.approximate_strategy),
            ("spelling", self.spelling_strategy),
        ]
        attempts = []
        for label, strategy in strategies:
            result = strategy(term)
            if isinstance(result, Ok):
                resolution = result.value.model_copy(
                    update={"execution_time_ms": round((time.time() - start) * 1000, 2)}
                )
                logger.info(
                    "[Resolver] '%s' -> %s (%s, %s, confidence=%.2f)",
                    term,
                    resolution.identity.canonical_name,
                    resolution.identity.id,
                    label,
                    resolution.identity.confidence,
                )
                return Ok(resolution)
            logger.info("[Resolver] %s strategy failed for '%s': %s", label, term, result.message)
            attempts.append({"strategy": label, "kind": result.kind.value, "message": result.message})

        logger.warning("[Resolver] All strategies exhausted for '%s'", term)
        return Err(
            ErrorKind.IDENTITY_NOT_FOUND,
            f"Drug not found: {term}",
            details={"search_term": term, "attempts": attempts},
        )

    def resolve_identifier(self, identity_id: str) -> Result[ResolutionResult]:
        """Resolve a known identifier directly (confidence 1.0)."""
        start = time.time()
        identity = self._identity_for(identity_id, 1.0, None)
        if isinstance(identity, Err):
            return identity
        if identity.value is None:
            return _not_found(identity_id, "identifier")
        return Ok(
            ResolutionResult(
                identity=identity.value,
                method=ResolutionMethod.IDENTIFIER,
                search_term=identity_id,
                execution_time_ms=round((time.time() - start) * 1000, 2),
            )
        )

    def find_related(
        self,
        identity_id: str,
        term_types: Sequence[str] = RELATED_TERM_TYPES,
        limit: int = MAX_RELATED,
    ) -> Result[list[ResolvedIdentity]]:
        """Related clinical/branded drugs for an identity, excluding itself."""
        result = self.catalog.get_related_concepts(identity_id, term_types)
        if isinstance(result, Err):
            return result
        related: list[ResolvedIdentity] = []
        for group in result.value:
            for member in group.members:
                if member.id == identity_id:
                    continue
                related.append(enrich_identity(identity_from_properties(member, 1.0)))
        return Ok(merge_by_id(related)[:limit])

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def exact_strategy(self, term: str) -> Result[ResolutionResult]:
        ids = self.catalog.search_by_name(term, EXACT_MAX_ENTRIES)
        if isinstance(ids, Err):
            return ids
        if not ids.value:
            return _not_found(term, "exact")

        identity = self._identity_for(ids.value[0], 1.0, term)
        if isinstance(identity, Err):
            return identity
        if identity.value is None:
            return _not_found(term, "exact", identity_id=ids.value[0])
        return Ok(
            ResolutionResult(
                identity=identity.value,
                method=ResolutionMethod.EXACT,
                search_term=term,
            )
        )

    def approximate_strategy(self, term: str) -> Result[ResolutionResult]:
        matches = self.catalog.get_approximate_matches(term, self.approximate_max_entries, 1)
        if isinstance(matches, Err):
            return matches
        if not matches.value:
            return _not_found(term, "approximate")

        scored: list[ResolvedIdentity] = []
        for candidate in matches.value:
            confidence = confidence_from_score(candidate.score, candidate.rank)
            if confidence < self.min_confidence:
                continue
            identity = self._identity_for(candidate.id, confidence, term)
            if isinstance(identity, Err):
                logger.warning(
                    "[Resolver] Properties lookup failed for candidate %s: %s",
                    candidate.id,
                    identity.message,
                )
                continue
            if identity.value is not None:
                scored.append(identity.value)

        ranked = merge_by_id(sort_by_confidence(filter_by_confidence(scored, self.min_confidence)))
        if not ranked:
            return _not_found(term, "approximate", candidates=len(matches.value))
        return Ok(
            ResolutionResult(
                identity=ranked[0],
                alternatives=ranked[1 : 1 + self.max_alternatives],
                method=ResolutionMethod.APPROXIMATE,
                search_term=term,
            )
        )

    def spelling_strategy(self, term: str) -> Result[ResolutionResult]:
        suggestions = self.catalog.get_spelling_suggestions(term)
        if isinstance(suggestions, Err):
            return suggestions
        if not suggestions.value:
            return _not_found(term, "spelling")

        for suggestion in suggestions.value:
            exact = self.exact_strategy(suggestion)
            if isinstance(exact, Err):
                logger.debug("[Resolver] Suggestion '%s' failed: %s", suggestion, exact.message)
                continue
            identity = exact.value.identity
            penalized = identity.model_copy(
                update={"confidence": clamp_confidence(min(identity.confidence * self.spelling_penalty, 1.0))}
            )
            return Ok(
                ResolutionResult(
                    identity=penalized,
                    method=ResolutionMethod.SPELLING,
                    search_term=term,
                )
            )
        return _not_found(term, "spelling", suggestions=suggestions.value)

    # ------------------------------------------------------------------

    def _identity_for(
        self, identity_id: str, confidence: float, original_name: Optional[str]
    ) -> Result[Optional[ResolvedIdentity]]:
        props = self.catalog.get_properties(identity_id)
        if isinstance(props, Err):
            return props
        if props.value is None:
            return Ok(None)
        return Ok(enrich_identity(identity_from_properties(props.value, confidence), original_name))

"""
RxNorm (RxNav REST) identity catalog client.

Thin wire adapter: each method issues one request through the
``RemoteCaller`` and flattens RxNav's loosely-typed JSON (single objects
where lists are expected, numbers as strings) into the shared models.

Endpoints:
  /rxcui.json                  exact name -> identifiers
  /approximateTerm.json        fuzzy candidates with score/rank
  /spellingsuggestions.json    spelling suggestions
  /rxcui/{id}/properties.json  concept properties
  /rxcui/{id}/related.json     related concepts by term type
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from ndc_navigator.utils.models import ApproximateCandidate, ConceptGroup, ConceptProperties
from ndc_navigator.utils.remote_caller import RemoteCaller
from ndc_navigator.utils.result import Err, Ok, Result

logger = logging.getLogger(__name__)


def _as_list(value: Any) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _concept(raw: dict[str, Any]) -> Optional[ConceptProperties]:
    rxcui = raw.get("rxcui")
    name = raw.get("name")
    if not rxcui or not name:
        return None
    return ConceptProperties(
        id=str(rxcui),
        name=name,
        term_type=raw.get("tty") or "",
        synonym=raw.get("synonym") or None,
    )


class RxNormClient:
    def __init__(self, caller: RemoteCaller):
        self.caller = caller

    def search_by_name(self, name: str, max_entries: Optional[int] = None) -> Result[list[str]]:
        params: dict[str, Any] = {"name": name}
        if max_entries:
            params["maxEntries"] = max_entries
        result = self.caller.get_json("/rxcui.json", params)
        if isinstance(result, Err):
            return result
        group = (result.value or {}).get("idGroup") or {}
        return Ok([str(i) for i in _as_list(group.get("rxnormId")) if i])

    def get_approximate_matches(
        self,
        term: str,
        max_entries: int = 10,
        option: int = 1,
    ) -> Result[list[ApproximateCandidate]]:
        result = self.caller.get_json(
            "/approximateTerm.json",
            {"term": term, "maxEntries": max_entries, "option": option},
        )
        if isinstance(result, Err):
            return result
        group = (result.value or {}).get("approximateGroup") or {}
        candidates = []
        for raw in _as_list(group.get("candidate")):
            if not isinstance(raw, dict) or not raw.get("rxcui"):
                continue
            candidates.append(
                ApproximateCandidate(
                    id=str(raw["rxcui"]),
                    score=None if raw.get("score") is None else str(raw["score"]),
                    rank=None if raw.get("rank") is None else str(raw["rank"]),
                )
            )
        return Ok(candidates)

    def get_spelling_suggestions(self, name: str) -> Result[list[str]]:
        result = self.caller.get_json("/spellingsuggestions.json", {"name": name})
        if isinstance(result, Err):
            return result
        group = (result.value or {}).get("suggestionGroup") or {}
        suggestions = (group.get("suggestionList") or {}).get("suggestion")
        return Ok([s for s in _as_list(suggestions) if isinstance(s, str) and s.strip()])

    def get_properties(self, identity_id: str) -> Result[Optional[ConceptProperties]]:
        result = self.caller.get_json(f"/rxcui/{identity_id}/properties.json")
        if isinstance(result, Err):
            return result
        raw = (result.value or {}).get("properties")
        return Ok(_concept(raw) if isinstance(raw, dict) else None)

    def get_related_concepts(
        self,
        identity_id: str,
        term_types: Sequence[str],
    ) -> Result[list[ConceptGroup]]:
        result = self.caller.get_json(
            f"/rxcui/{identity_id}/related.json",
            {"tty": " ".join(term_types)},
        )
        if isinstance(result, Err):
            return result
        related = (result.value or {}).get("relatedGroup") or {}
        groups = []
        for raw_group in _as_list(related.get("conceptGroup")):
            members = [
                c for c in (_concept(m) for m in _as_list(raw_group.get("conceptProperties"))) if c
            ]
            groups.append(ConceptGroup(term_type=raw_group.get("tty") or "", members=members))
        logger.debug("[RxNorm] %d related groups for %s", len(groups), identity_id)
        return Ok(groups)

"""
Identity Enricher / Merger
==========================
Pure functions over ``ResolvedIdentity`` records and free-text drug names.

  - extract_dosage_form / extract_strength: pattern rules over names such as
    "lisinopril 10 MG Oral Tablet"
  - parse_drug_name: base name with strength and dosage form stripped
  - enrich_identity: fill missing dosage form / strength
  - merge_drug_information / deduplicate: collapse records that share an id

Nothing here performs I/O; records are never mutated (new ones are built
with ``model_copy``).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from ndc_navigator.utils.models import ResolvedIdentity

# Order matters: the first form found wins.
DOSAGE_FORMS = [
    "TABLET",
    "CAPSULE",
    "CAPLET",
    "SOLUTION",
    "SUSPENSION",
    "SYRUP",
    "INJECTION",
    "CREAM",
    "OINTMENT",
    "GEL",
    "LOTION",
    "PATCH",
    "SPRAY",
    "INHALER",
    "SUPPOSITORY",
    "POWDER",
]

_DOSAGE_FORM_PATTERNS = [
    (form, re.compile(rf"\b{form}(?:S|ES)?\b", re.IGNORECASE)) for form in DOSAGE_FORMS
]

_NUMBER = r"\d+(?:\.\d+)?"

# Simple "10 MG" (not followed by a "/" denominator), ratio "250 MG/5 ML", percentage "0.1 %".
STRENGTH_PATTERNS = [
    re.compile(rf"(?<![\d./])(?<!/\s){_NUMBER}\s*(?:MG|MCG|G|ML|L|UNITS?|UNT|MEQ)\b(?!\s*/)", re.IGNORECASE),
    re.compile(
        rf"{_NUMBER}\s*(?:MG|MCG|G|UNITS?|UNT|MEQ)\s*/\s*(?:{_NUMBER}\s*)?(?:ML|L|ACTUAT|HR)\b",
        re.IGNORECASE,
    ),
    re.compile(rf"{_NUMBER}\s*%"),
]

DRUG_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9\s\-()/.%]+$")
MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 200


@dataclass(frozen=True)
class ParsedDrugName:
    base_name: str
    strength: Optional[str] = None
    dosage_form: Optional[str] = None


# ---------------------------------------------------------------------------
# Name parsing
# ---------------------------------------------------------------------------

def extract_dosage_form(name: str) -> Optional[str]:
    for form, pattern in _DOSAGE_FORM_PATTERNS:
        if pattern.search(name):
            return form
    return None


def extract_strength(name: str) -> Optional[str]:
    for pattern in STRENGTH_PATTERNS:
        match = pattern.search(name)
        if match:
            return match.group(0).strip()
    return None


def parse_drug_name(name: str) -> ParsedDrugName:
    strength = extract_strength(name)
    dosage_form = extract_dosage_form(name)

    base = name
    if strength:
        base = base.replace(strength, " ", 1)
    if dosage_form:
        base = re.sub(rf"\b{dosage_form}(?:S|ES)?\b", " ", base, count=1, flags=re.IGNORECASE)
    base = re.sub(r"[,\-\s]+", " ", base).strip()
    return ParsedDrugName(base_name=base, strength=strength, dosage_form=dosage_form)


def normalize_drug_name(name: str) -> str:
    """Lower-case, punctuation-free, single-spaced form used for comparisons."""
    cleaned = re.sub(r"[^a-z0-9\s]", " ", name.lower())
    return " ".join(cleaned.split())


def are_drug_names_similar(a: str, b: str) -> bool:
    left, right = normalize_drug_name(a), normalize_drug_name(b)
    if not left or not right:
        return False
    return left == right or left in right or right in left


def validate_drug_name(name: str) -> Optional[str]:
    """Return an error message when the name cannot be searched, else None."""
    stripped = (name or "").strip()
    if len(stripped) < MIN_NAME_LENGTH:
        return f"Drug name must be at least {MIN_NAME_LENGTH} characters"
    if len(stripped) > MAX_NAME_LENGTH:
        return f"Drug name must be at most {MAX_NAME_LENGTH} characters"
    if not DRUG_NAME_PATTERN.match(stripped):
        return "Drug name contains invalid characters"
    return None


# ---------------------------------------------------------------------------
# Identity records
# ---------------------------------------------------------------------------

def enrich_identity(identity: ResolvedIdentity, original_name: Optional[str] = None) -> ResolvedIdentity:
    """Fill dosage form and strength from the canonical name, then from the raw input."""
    if identity.dosage_form and identity.strength:
        return identity

    sources = [parse_drug_name(identity.canonical_name)]
    if original_name:
        sources.append(parse_drug_name(original_name))

    dosage_form = identity.dosage_form or next(
        (p.dosage_form for p in sources if p.dosage_form), None
    )
    strength = identity.strength or next((p.strength for p in sources if p.strength), None)
    if dosage_form == identity.dosage_form and strength == identity.strength:
        return identity
    return identity.model_copy(update={"dosage_form": dosage_form, "strength": strength})


def filter_by_confidence(
    identities: Iterable[ResolvedIdentity], min_confidence: float
) -> list[ResolvedIdentity]:
    return [i for i in identities if i.confidence >= min_confidence]


def sort_by_confidence(identities: Iterable[ResolvedIdentity]) -> list[ResolvedIdentity]:
    return sorted(identities, key=lambda i: i.confidence, reverse=True)


def deduplicate(identities: Iterable[ResolvedIdentity]) -> list[ResolvedIdentity]:
    """Keep the first record seen for each id."""
    seen: set[str] = set()
    unique = []
    for identity in identities:
        if identity.id not in seen:
            seen.add(identity.id)
            unique.append(identity)
    return unique


def merge_drug_information(identities: Iterable[ResolvedIdentity]) -> Optional[ResolvedIdentity]:
    """
    Combine records describing the same identity: union of synonyms,
    maximum confidence, and any unset field taken from the first record
    that defines it.
    """
    records = list(identities)
    if not records:
        return None

    base = records[0]
    update: dict = {
        "synonyms": frozenset().union(*(r.synonyms for r in records)),
        "confidence": max(r.confidence for r in records),
    }
    for field_name in ("generic_name", "brand_name", "dosage_form", "strength"):
        if getattr(base, field_name) is None:
            update[field_name] = next(
                (getattr(r, field_name) for r in records if getattr(r, field_name) is not None),
                None,
            )
    return base.model_copy(update=update)


def merge_by_id(identities: Iterable[ResolvedIdentity]) -> list[ResolvedIdentity]:
    """Group records by id (first-seen order) and merge each group."""
    groups: dict[str, list[ResolvedIdentity]] = {}
    for identity in identities:
        groups.setdefault(identity.id, []).append(identity)
    return [merge_drug_information(group) for group in groups.values()]

"""
Catalog Adapter
===============
Fetches package-level records for a resolved identity from the packaging
catalog (openFDA NDC directory) and normalizes them into ``PackageRecord``.

Normalization:
  - package size free text, e.g. "100 TABLET in 1 BOTTLE (0071-0156-23)",
    parsed with three fallback patterns
  - unit synonyms (plural / long forms) mapped to a canonical token
  - package codes rewritten to the 11-digit 5-4-2 dashed form
  - marketing status derived from start / end dates

Packages with codes that cannot be normalized are dropped and logged.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import Iterable, Optional, Protocol

from ndc_navigator.utils.models import (
    CatalogPackaging,
    CatalogProduct,
    MarketingState,
    MarketingStatus,
    PackageFilters,
    PackageRecord,
    PackageSize,
    ResolvedIdentity,
)
from ndc_navigator.utils.result import Err, Ok, Result

logger = logging.getLogger(__name__)

UNKNOWN_UNIT = "UNKNOWN"

UNIT_SYNONYMS: dict[str, str] = {
    "TABLET": "TABLET", "TABLETS": "TABLET", "TAB": "TABLET", "TABS": "TABLET",
    "CAPSULE": "CAPSULE", "CAPSULES": "CAPSULE", "CAP": "CAPSULE", "CAPS": "CAPSULE",
    "ML": "ML", "MILLILITER": "ML", "MILLILITERS": "ML", "MILLILITRE": "ML",
    "L": "L", "LITER": "L", "LITERS": "L", "LITRE": "L",
    "GM": "GM", "G": "GM", "GRAM": "GM", "GRAMS": "GM",
    "MG": "MG", "MILLIGRAM": "MG", "MILLIGRAMS": "MG",
    "MCG": "MCG", "UG": "MCG", "MICROGRAM": "MCG", "MICROGRAMS": "MCG",
    "UNIT": "UNIT", "UNITS": "UNIT",
    "KIT": "KIT", "KITS": "KIT",
    "PATCH": "PATCH", "PATCHES": "PATCH",
    "VIAL": "VIAL", "VIALS": "VIAL",
    "BOTTLE": "BOTTLE", "BOTTLES": "BOTTLE",
    "BLISTER": "BLISTER", "BLISTERS": "BLISTER",
    "SYRINGE": "SYRINGE", "SYRINGES": "SYRINGE",
    "INHALER": "INHALER", "INHALERS": "INHALER",
    "PUFF": "PUFF", "PUFFS": "PUFF", "ACTUATION": "PUFF", "ACTUATIONS": "PUFF",
    "SUPPOSITORY": "SUPPOSITORY", "SUPPOSITORIES": "SUPPOSITORY", "SUPP": "SUPPOSITORY",
}

_QTY = r"(\d+(?:\.\d+)?)"
# "100 TABLET in 1 BOTTLE", "30 TABLET, FILM COATED in 1 BOTTLE"
SIZE_WITH_CONTAINER = re.compile(rf"^{_QTY}\s+([A-Z]+)\b[^>]*?\s+IN\s+\d+", re.IGNORECASE)
# "100 TABLET"
SIZE_ONLY = re.compile(rf"^{_QTY}\s+([A-Z]+)$", re.IGNORECASE)
_FIRST_NUMBER = re.compile(_QTY)
_WORD = re.compile(r"[A-Z]+", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Text normalization
# ---------------------------------------------------------------------------

def normalize_unit(unit: str) -> str:
    token = (unit or "").strip().upper()
    return UNIT_SYNONYMS.get(token, token or UNKNOWN_UNIT)


def parse_package_size(description: str) -> PackageSize:
    """Parse a packaging description into quantity + canonical unit."""
    text = (description or "").strip()
    normalized = " ".join(text.upper().split())

    for pattern in (SIZE_WITH_CONTAINER, SIZE_ONLY):
        match = pattern.match(normalized)
        if match and float(match.group(1)) > 0:
            return PackageSize(
                quantity=float(match.group(1)),
                unit=normalize_unit(match.group(2)),
                raw_text=text,
            )

    # Last resort: first number + last word
    number = _FIRST_NUMBER.search(normalized)
    words = _WORD.findall(normalized)
    if number and words and float(number.group(1)) > 0:
        return PackageSize(
            quantity=float(number.group(1)),
            unit=normalize_unit(words[-1]),
            raw_text=text,
        )

    logger.warning("[Catalog] Could not parse package size: %r", description)
    return PackageSize(quantity=1, unit=UNKNOWN_UNIT, raw_text=text)


def normalize_package_code(code: str) -> Optional[str]:
    """
    Rewrite a package code to the 11-digit 5-4-2 form.

    Dashed 10-digit codes (4-4-2, 5-3-2, 5-4-1) are padded in their short
    segment; undashed 10-digit codes get a leading zero on the labeler.
    Returns None when the input cannot be an NDC.
    """
    raw = (code or "").strip()
    if not raw:
        return None

    parts = raw.split("-")
    if len(parts) == 3 and all(p.isdigit() for p in parts):
        labeler, product, package = parts
        if len(labeler) > 5 or len(product) > 4 or len(package) > 2:
            return None
        if len(labeler) + len(product) + len(package) not in (10, 11):
            return None
        return f"{labeler.zfill(5)}-{product.zfill(4)}-{package.zfill(2)}"

    digits = re.sub(r"\D", "", raw)
    if len(digits) != len(raw.replace("-", "")) or len(digits) not in (10, 11):
        return None
    digits = digits.zfill(11)
    return f"{digits[:5]}-{digits[5:9]}-{digits[9:]}"


def parse_fda_date(value: Optional[str]) -> Optional[str]:
    """YYYYMMDD -> ISO YYYY-MM-DD; None when absent or malformed."""
    if not value:
        return None
    text = value.strip()
    if not re.fullmatch(r"\d{8}", text):
        return None
    try:
        return date(int(text[:4]), int(text[4:6]), int(text[6:])).isoformat()
    except ValueError:
        return None


def parse_marketing_status(
    start_date: Optional[str], end_date: Optional[str]
) -> MarketingStatus:
    start_iso = parse_fda_date(start_date)
    end_iso = parse_fda_date(end_date)
    if end_iso:
        state = MarketingState.DISCONTINUED
    elif start_iso:
        state = MarketingState.ACTIVE
    else:
        state = MarketingState.UNKNOWN
    return MarketingStatus(
        is_active=state is MarketingState.ACTIVE,
        status=state,
        start_date=start_iso,
        end_date=end_iso,
    )


def describe_exclusion(record: PackageRecord) -> str:
    status = record.marketing_status
    if status.status is MarketingState.DISCONTINUED:
        return f"discontinued as of {status.end_date}" if status.end_date else "discontinued"
    if status.status is MarketingState.EXPIRED:
        return f"listing expired as of {status.end_date}" if status.end_date else "listing expired"
    if status.status is MarketingState.UNKNOWN:
        return "marketing status unknown (no marketing dates on record)"
    return "inactive"


# ---------------------------------------------------------------------------
# Record mapping
# ---------------------------------------------------------------------------

def map_package(
    product: CatalogProduct, packaging: CatalogPackaging, identity_id: Optional[str] = None
) -> Optional[PackageRecord]:
    code = normalize_package_code(packaging.package_code)
    if code is None:
        logger.warning(
            "[Catalog] Dropping package with invalid code %r (%s)",
            packaging.package_code,
            product.product_code,
        )
        return None
    return PackageRecord(
        code=code,
        product_code=product.product_code,
        generic_name=product.generic_name,
        brand_name=product.brand_name,
        dosage_form=product.dosage_form.upper(),
        route=product.route,
        size=parse_package_size(packaging.description),
        active_ingredients=product.active_ingredients,
        marketing_status=parse_marketing_status(
            packaging.marketing_start_date, packaging.marketing_end_date
        ),
        labeler=product.labeler,
        identity_id=identity_id or (product.identity_ids[0] if product.identity_ids else None),
    )


def map_products(
    products: Iterable[CatalogProduct], identity_id: Optional[str] = None
) -> list[PackageRecord]:
    records: list[PackageRecord] = []
    seen: set[str] = set()
    for product in products:
        for packaging in product.packaging:
            record = map_package(product, packaging, identity_id)
            if record is None or record.code in seen:
                continue
            seen.add(record.code)
            records.append(record)
    return records


# ---------------------------------------------------------------------------
# Filtering helpers
# ---------------------------------------------------------------------------

def filter_by_dosage_form(packages: Iterable[PackageRecord], dosage_form: str) -> list[PackageRecord]:
    wanted = dosage_form.upper()
    return [p for p in packages if p.dosage_form.upper() == wanted]


def filter_active(packages: Iterable[PackageRecord]) -> list[PackageRecord]:
    return [p for p in packages if p.marketing_status.is_active]


def sort_by_package_size(packages: Iterable[PackageRecord], descending: bool = False) -> list[PackageRecord]:
    return sorted(packages, key=lambda p: p.size.quantity, reverse=descending)


def group_by_dosage_form(packages: Iterable[PackageRecord]) -> dict[str, list[PackageRecord]]:
    groups: dict[str, list[PackageRecord]] = {}
    for package in packages:
        groups.setdefault(package.dosage_form, []).append(package)
    return groups


def apply_filters(packages: list[PackageRecord], filters: PackageFilters) -> list[PackageRecord]:
    if filters.dosage_form:
        packages = filter_by_dosage_form(packages, filters.dosage_form)
    if filters.active_only:
        packages = filter_active(packages)
    return packages


# ---------------------------------------------------------------------------
# Adapter
# ---------------------------------------------------------------------------

class PackagingCatalog(Protocol):
    def search_by_identity(
        self, identity_id: str, limit: int = 100, skip: int = 0
    ) -> Result[list[CatalogProduct]]: ...

    def search_by_package_code(self, package_code: str) -> Result[list[CatalogProduct]]: ...


class CatalogAdapter:
    def __init__(self, catalog: PackagingCatalog):
        self.catalog = catalog

    def fetch_packages(
        self,
        identity: ResolvedIdentity,
        filters: Optional[PackageFilters] = None,
    ) -> Result[list[PackageRecord]]:
        filters = filters or PackageFilters()
        result = self.catalog.search_by_identity(identity.id, filters.limit, filters.skip)
        if isinstance(result, Err):
            return result

        records = map_products(result.value, identity.id)
        filtered = apply_filters(records, filters)
        logger.info(
            "[Catalog] %s: %d products, %d packages (%d after filters)",
            identity.id,
            len(result.value),
            len(records),
            len(filtered),
        )
        return Ok(filtered)

    def lookup_package(self, package_code: str) -> Result[Optional[PackageRecord]]:
        """Look up a single package code (as listed by the catalog, e.g. 0071-0156-23)."""
        result = self.catalog.search_by_package_code(package_code)
        if isinstance(result, Err):
            return result
        wanted = normalize_package_code(package_code)
        for record in map_products(result.value):
            if record.code == wanted:
                return Ok(record)
        return Ok(None)

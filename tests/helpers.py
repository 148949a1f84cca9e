from __future__ import annotations

from typing import Optional, Sequence

from ndc_navigator.utils.models import (
    ApproximateCandidate,
    CatalogPackaging,
    CatalogProduct,
    ConceptGroup,
    ConceptProperties,
    PackageCandidate,
)
from ndc_navigator.utils.result import Err, ErrorKind, Ok


def upstream_error(status: int = 503) -> Err:
    return Err(
        ErrorKind.UPSTREAM_SERVICE_ERROR,
        f"HTTP {status}",
        details={"status": status, "retryable": status >= 500},
    )


class FakeIdentityCatalog:
    """In-memory stand-in for the RxNorm client."""

    def __init__(
        self,
        exact: Optional[dict[str, list[str]]] = None,
        approximate: Optional[dict[str, list[ApproximateCandidate]]] = None,
        spelling: Optional[dict[str, list[str]]] = None,
        properties: Optional[dict[str, ConceptProperties]] = None,
        related: Optional[dict[str, list[ConceptGroup]]] = None,
        failing: Sequence[str] = (),
    ):
        self.exact = exact or {}
        self.approximate = approximate or {}
        self.spelling = spelling or {}
        self.properties = properties or {}
        self.related = related or {}
        self.failing = set(failing)
        self.calls: list[tuple[str, str]] = []

    def _call(self, method: str, arg: str):
        self.calls.append((method, arg))
        if method in self.failing:
            return upstream_error()
        return None

    def search_by_name(self, name, max_entries=None):
        return self._call("search_by_name", name) or Ok(self.exact.get(name.lower(), []))

    def get_approximate_matches(self, term, max_entries=10, option=1):
        return self._call("get_approximate_matches", term) or Ok(self.approximate.get(term.lower(), []))

    def get_spelling_suggestions(self, name):
        return self._call("get_spelling_suggestions", name) or Ok(self.spelling.get(name.lower(), []))

    def get_properties(self, identity_id):
        return self._call("get_properties", identity_id) or Ok(self.properties.get(identity_id))

    def get_related_concepts(self, identity_id, term_types):
        return self._call("get_related_concepts", identity_id) or Ok(self.related.get(identity_id, []))


class FakePackagingCatalog:
    def __init__(self, products: Optional[dict[str, list[CatalogProduct]]] = None, error: Optional[Err] = None):
        self.products = products or {}
        self.error = error
        self.calls: list[str] = []

    def search_by_identity(self, identity_id, limit=100, skip=0):
        self.calls.append(identity_id)
        if self.error:
            return self.error
        return Ok(self.products.get(identity_id, []))

    def search_by_package_code(self, package_code):
        self.calls.append(package_code)
        if self.error:
            return self.error
        return Ok(
            [
                p
                for products in self.products.values()
                for p in products
                if any(pkg.package_code == package_code for pkg in p.packaging)
            ]
        )


def make_product(
    product_code: str = "68180-513",
    dosage_form: str = "TABLET",
    packages: Sequence[tuple[str, str, Optional[str], Optional[str]]] = (),
    generic_name: str = "LISINOPRIL",
    brand_name: Optional[str] = None,
) -> CatalogProduct:
    """packages: (package_code, description, start, end)"""
    return CatalogProduct(
        product_code=product_code,
        generic_name=generic_name,
        brand_name=brand_name,
        dosage_form=dosage_form,
        route=["ORAL"],
        packaging=[
            CatalogPackaging(
                package_code=code,
                description=desc,
                marketing_start_date=start,
                marketing_end_date=end,
            )
            for code, desc, start, end in packages
        ],
        labeler="Lupin Pharmaceuticals, Inc.",
        product_type="HUMAN PRESCRIPTION DRUG",
        identity_ids=["314076"],
    )


def candidate(code: str, size: float, active: bool = True, unit: str = "TABLET") -> PackageCandidate:
    return PackageCandidate(code=code, size=size, unit=unit, labeler="Lupin", is_active=active)


LISINOPRIL = ConceptProperties(
    id="314076", name="lisinopril 10 MG Oral Tablet", term_type="SCD", synonym="Lisinopril 10mg Tab"
)

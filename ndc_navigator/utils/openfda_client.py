"""
openFDA NDC directory client (packaging catalog).

Wraps ``/drug/ndc.json`` and converts raw product entries into
``CatalogProduct`` models. openFDA answers a search with no matches with
HTTP 404; that is reported as an empty result, not an error.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ndc_navigator.utils.models import ActiveIngredient, CatalogPackaging, CatalogProduct
from ndc_navigator.utils.remote_caller import RemoteCaller
from ndc_navigator.utils.result import Err, Ok, Result

logger = logging.getLogger(__name__)

NDC_ENDPOINT = "/drug/ndc.json"
DEFAULT_LIMIT = 100


def _product_from_raw(raw: dict[str, Any]) -> Optional[CatalogProduct]:
    product_code = raw.get("product_ndc")
    if not product_code:
        return None
    openfda = raw.get("openfda") or {}
    application = raw.get("application_number") or (openfda.get("application_number") or [None])[0]
    return CatalogProduct(
        product_code=product_code,
        generic_name=raw.get("generic_name") or "",
        brand_name=raw.get("brand_name") or None,
        dosage_form=raw.get("dosage_form") or "",
        route=list(raw.get("route") or []),
        active_ingredients=[
            ActiveIngredient(name=ing.get("name", ""), strength=ing.get("strength", ""))
            for ing in raw.get("active_ingredients") or []
        ],
        packaging=[
            CatalogPackaging(
                package_code=pkg.get("package_ndc", ""),
                description=pkg.get("description", ""),
                marketing_start_date=pkg.get("marketing_start_date"),
                marketing_end_date=pkg.get("marketing_end_date"),
            )
            for pkg in raw.get("packaging") or []
            if pkg.get("package_ndc")
        ],
        labeler=raw.get("labeler_name") or "",
        product_type=raw.get("product_type") or "",
        application_number=application,
        identity_ids=[str(i) for i in openfda.get("rxcui") or []],
    )


class OpenFDAClient:
    def __init__(self, caller: RemoteCaller, api_key: Optional[str] = None):
        self.caller = caller
        self.api_key = api_key

    def _search(self, query: str, limit: int, skip: int) -> Result[list[CatalogProduct]]:
        params: dict[str, Any] = {"search": query, "limit": limit}
        if skip:
            params["skip"] = skip
        if self.api_key:
            params["api_key"] = self.api_key

        result = self.caller.get_json(NDC_ENDPOINT, params)
        if isinstance(result, Err):
            if result.details.get("status") == 404:
                logger.info("[openFDA] No products for %s", query)
                return Ok([])
            return result

        products = []
        for raw in (result.value or {}).get("results") or []:
            product = _product_from_raw(raw)
            if product is not None:
                products.append(product)
        return Ok(products)

    def search_by_identity(
        self, identity_id: str, limit: int = DEFAULT_LIMIT, skip: int = 0
    ) -> Result[list[CatalogProduct]]:
        return self._search(f'openfda.rxcui:"{identity_id}"', limit, skip)

    def search_by_package_code(self, package_code: str) -> Result[list[CatalogProduct]]:
        return self._search(f'packaging.package_ndc:"{package_code}"', 1, 0)

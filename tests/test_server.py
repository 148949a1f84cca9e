from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from helpers import LISINOPRIL, FakeIdentityCatalog, FakePackagingCatalog, make_product
from ndc_navigator import __version__
from ndc_navigator.pipeline import NDCEngine
from ndc_navigator.server import create_app
from ndc_navigator.systems.advisory_recommender import AdvisoryRecommender
from ndc_navigator.systems.advisory_service import AdvisoryService
from ndc_navigator.systems.catalog_adapter import CatalogAdapter
from ndc_navigator.systems.name_resolver import NameResolver
from ndc_navigator.utils.circuit_breaker import CircuitBreaker
from ndc_navigator.utils.config import Settings
from ndc_navigator.utils.models import ConceptGroup, ConceptProperties


@pytest.fixture
def client() -> TestClient:
    identity_catalog = FakeIdentityCatalog(
        exact={"lisinopril": ["314076"]},
        properties={"314076": LISINOPRIL},
        related={
            "314076": [
                ConceptGroup(
                    term_type="SBD",
                    members=[
                        ConceptProperties(id="104377", name="lisinopril 10 MG Oral Tablet [Zestril]", term_type="SBD"),
                        ConceptProperties(id="314076", name="lisinopril 10 MG Oral Tablet", term_type="SCD"),
                    ],
                )
            ]
        },
    )
    packaging = FakePackagingCatalog(
        {
            "314076": [
                make_product(
                    packages=[
                        ("68180-513-01", "100 TABLET in 1 BOTTLE", "20100101", None),
                        ("68180-513-03", "30 TABLET in 1 BOTTLE", "20100101", None),
                    ]
                )
            ]
        }
    )
    engine = NDCEngine(
        resolver=NameResolver(identity_catalog),
        catalog=CatalogAdapter(packaging),
        recommender=AdvisoryRecommender(AdvisoryService(None, CircuitBreaker())),
        settings=Settings(),
    )
    return TestClient(create_app(engine=engine))


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "advisory_configured": False,
        "advisory_circuit": "closed",
        "version": __version__,
    }


def test_calculate(client):
    response = client.post(
        "/calculate", json={"drug": "lisinopril", "dose": 1, "frequency": 1, "days_supply": 30}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total_quantity"] == 30
    assert body["recommended_packages"][0]["code"] == "68180-0513-03"
    assert body["explanations"][0]["step"] == "normalization"


def test_calculate_unknown_drug_is_404(client):
    response = client.post(
        "/calculate", json={"drug": "unobtainium", "dose": 1, "frequency": 1, "days_supply": 30}
    )

    assert response.status_code == 404
    detail = response.json()["detail"]
    assert detail["code"] == "IDENTITY_NOT_FOUND"
    assert detail["explanations"][0]["step"] == "normalization"


def test_calculate_rejects_out_of_range_days(client):
    response = client.post(
        "/calculate", json={"drug": "lisinopril", "dose": 1, "frequency": 1, "days_supply": 400}
    )

    assert response.status_code == 422


def test_normalize(client):
    response = client.post("/normalize", json={"drug": "lisinopril"})

    assert response.status_code == 200
    body = response.json()
    assert body["identity"]["id"] == "314076"
    assert body["identity"]["dosage_form"] == "TABLET"
    assert body["method"] == "exact"


def test_normalize_invalid_name_is_400(client):
    response = client.post("/normalize", json={"drug": "lisinopril; drop"})

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_INPUT"


def test_related_excludes_the_identity_itself(client):
    response = client.get("/related/314076")

    assert response.status_code == 200
    assert [r["id"] for r in response.json()["related"]] == ["104377"]

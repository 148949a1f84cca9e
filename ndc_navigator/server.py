"""
FastAPI Server
==============
Thin REST surface over the calculation engine.

Endpoints:
  GET  /health                 - Health check, advisory / circuit state
  POST /calculate              - Full calculation: identity, quantity, packages
  POST /normalize              - Name resolution only
  GET  /related/{identity_id}  - Related clinical / branded drug concepts

Error kinds map to HTTP status codes; the body carries the stable error
code and the explanation trail.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from ndc_navigator import __version__
from ndc_navigator.pipeline import NDCEngine, build_engine
from ndc_navigator.utils.config import Settings
from ndc_navigator.utils.models import PrescriptionRequirement
from ndc_navigator.utils.result import Err, ErrorKind

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.IDENTITY_NOT_FOUND: 404,
    ErrorKind.NO_PACKAGES_FOUND: 404,
    ErrorKind.NO_ACTIVE_PACKAGES: 422,
    ErrorKind.UPSTREAM_SERVICE_ERROR: 502,
    ErrorKind.ADVISORY_SERVICE_ERROR: 502,
}


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class CalculateRequest(BaseModel):
    drug: str = Field(
        ...,
        min_length=2,
        max_length=200,
        description="Drug name (free text) or RxNorm identifier.",
        examples=["lisinopril 10 mg tablet"],
    )
    dose: float = Field(..., gt=0, description="Units per administration.")
    frequency: float = Field(..., gt=0, description="Administrations per day.")
    days_supply: int = Field(..., ge=1, le=365)
    unit: Optional[str] = Field(default=None, examples=["tablet"])
    directions: Optional[str] = Field(default=None, max_length=500)


class NormalizeRequest(BaseModel):
    drug: str = Field(..., min_length=2, max_length=200)


class HealthResponse(BaseModel):
    status: str
    advisory_configured: bool
    advisory_circuit: Optional[str] = None
    version: str


def _raise_for(err: Err) -> None:
    logger.info("Request failed: %s (%s)", err.kind.value, err.message)
    raise HTTPException(status_code=STATUS_BY_KIND.get(err.kind, 500), detail=err.to_dict())


def create_app(engine: Optional[NDCEngine] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "engine", None) is None:
            # Load environment variables from .env file
            load_dotenv()
            app.state.engine = build_engine(Settings.from_env())
            logger.info("Engine built (advisory=%s)", app.state.engine.settings.advisory_configured)
        yield

    app = FastAPI(
        title="NDC Navigator API",
        description=(
            "Resolves drug names to RxNorm identities, calculates dispensing quantities and "
            "recommends NDC package codes with minimal waste."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Restrict to your frontend domain in production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # -----------------------------------------------------------------------
    # Endpoints
    # -----------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse)
    def health_check(request: Request):
        engine: NDCEngine = request.app.state.engine
        service = engine.recommender.service
        return HealthResponse(
            status="ok",
            advisory_configured=engine.settings.advisory_configured,
            advisory_circuit=service.breaker.snapshot()["state"] if service else None,
            version=__version__,
        )

    @app.post("/calculate")
    def calculate(body: CalculateRequest, request: Request):
        engine: NDCEngine = request.app.state.engine
        requirement = PrescriptionRequirement(
            dose_per_administration=body.dose,
            frequency_per_day=body.frequency,
            days_supply=body.days_supply,
            unit=body.unit,
            directions=body.directions,
        )
        result = engine.calculate(body.drug, requirement)
        if isinstance(result, Err):
            _raise_for(result)
        return result.value.model_dump(mode="json")

    @app.post("/normalize")
    def normalize(body: NormalizeRequest, request: Request):
        engine: NDCEngine = request.app.state.engine
        result = engine.normalize(body.drug)
        if isinstance(result, Err):
            _raise_for(result)
        return result.value.model_dump(mode="json")

    @app.get("/related/{identity_id}")
    def related(identity_id: str, request: Request):
        engine: NDCEngine = request.app.state.engine
        result = engine.related(identity_id)
        if isinstance(result, Err):
            _raise_for(result)
        return {"identity_id": identity_id, "related": [r.model_dump(mode="json") for r in result.value]}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("ndc_navigator.server:app", host="0.0.0.0", port=8000, reload=True)

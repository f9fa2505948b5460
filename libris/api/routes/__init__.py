"""API route initialization and versioning."""

from fastapi import APIRouter, Depends

from libris.api.routes import extractions, ingestion, sources
from libris.api.security import verify_api_key

# API v1 router - all versioned endpoints go under /api/v1 and require the API key
api_v1_router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])

api_v1_router.include_router(ingestion.router)
api_v1_router.include_router(sources.router)
api_v1_router.include_router(extractions.router)

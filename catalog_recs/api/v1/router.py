"""API v1 router - aggregates all endpoint routers."""

from fastapi import APIRouter

from catalog_recs.api.v1 import recommendations

api_router = APIRouter()

api_router.include_router(recommendations.router, prefix="/recommendations", tags=["recommendations"])

"""
API v1 router configuration.
"""
from fastapi import APIRouter

from ledgervote.api.v1.endpoints import admin, queries, votes


api_router = APIRouter()

api_router.include_router(
    admin.router,
    prefix="/ledger",
    tags=["Ledger administration"]
)

api_router.include_router(
    votes.router,
    prefix="/ledger",
    tags=["Voting"]
)

api_router.include_router(
    queries.router,
    prefix="/ledger",
    tags=["Ledger queries"]
)

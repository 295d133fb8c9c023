"""Aggregate the /api routers."""

from fastapi import APIRouter
from training_gateway.api.v1.upload import router as upload_router
from training_gateway.api.v1.status import router as status_router
from training_gateway.api.v1.callback import router as callback_router

api_router = APIRouter(prefix="/api")
api_router.include_router(upload_router, tags=["upload"])
api_router.include_router(status_router, tags=["jobs"])
api_router.include_router(callback_router, tags=["callback"])

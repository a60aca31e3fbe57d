"""
API v0 router module.

This module configures all API routes for version 0 of the Better Me feed API.
"""
from fastapi import APIRouter

from app.api.v0 import personalization, reels

api_router = APIRouter()

api_router.include_router(personalization.router, prefix="/personalization", tags=["personalization"])
api_router.include_router(reels.router, prefix="/reels", tags=["reels"])

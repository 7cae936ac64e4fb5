"""Health endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from cspguard.config.loader import configuration_from_settings, get_settings

router = APIRouter()


@router.get("/health")
async def health():
    """Health check with the header name the default policy emits."""
    config = configuration_from_settings(get_settings())
    return {
        "status": "healthy",
        "policy_header": config.header_name,
        "report_only": config.report_only,
    }

"""
Health check and status endpoints
"""
from fastapi import APIRouter
from datetime import datetime
from app.config import get_settings
from app import __version__

settings = get_settings()

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/status")
async def get_status():
    """Get system status"""
    return {
        "app_name": settings.app_name,
        "version": __version__,
        "environment": settings.environment,
        "currency": settings.currency,
        "sellers": settings.seller_list,
        "split_seller_marker": settings.split_seller_marker,
        "features": {
            "cache_warmup": settings.enable_cache_warmup,
        },
        "cache": {
            "revalidate_after_ms": settings.summary_revalidate_after_ms,
            "ttl_seconds": settings.summary_cache_ttl_seconds,
        },
        "timestamp": datetime.utcnow().isoformat()
    }

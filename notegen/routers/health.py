"""
Health check endpoint.
"""
from fastapi import APIRouter, Depends
from datetime import datetime
import logging

from notegen.config import settings
from notegen.dependencies.services import get_generation_client
from notegen.models.schemas import HealthCheckResponse
from notegen.services.generation_client import GenerationClient

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/", response_model=HealthCheckResponse)
async def health_check(generator: GenerationClient = Depends(get_generation_client)):
    """
    Health check endpoint to verify system status.

    Returns:
        HealthCheckResponse with the service version and whether a
        generation endpoint is configured
    """
    generation_status = "configured" if generator.configured else "not_configured"
    overall_status = "healthy" if generator.configured else "degraded"

    return HealthCheckResponse(
        status=overall_status,
        version=settings.VERSION,
        generation=generation_status,
        timestamp=datetime.utcnow()
    )

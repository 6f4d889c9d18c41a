"""Health and readiness checks for the tracker service."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from ..database import TransactionGateway
from ..deps import get_gateway

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    return {"status": "healthy", "service": "tracker"}


@router.get("/ready")
async def readiness_check(gateway: TransactionGateway = Depends(get_gateway)):
    try:
        async with gateway.reader() as db:
            await db.execute(text("SELECT 1"))
    except DBAPIError as exc:
        logger.warning("Readiness check failed: %s", exc.orig)
        return JSONResponse(
            status_code=503, content={"status": "unavailable", "service": "tracker"}
        )
    return {"status": "ready", "service": "tracker"}

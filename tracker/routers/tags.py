"""Tag routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..database import TransactionGateway
from ..deps import get_current_user, get_gateway
from ..schemas.tag import TagCreate, TagResponse
from ..services import tag_svc

router = APIRouter(prefix="/tags", tags=["tags"])


@router.get("", response_model=list[TagResponse])
async def tag_list(gateway: TransactionGateway = Depends(get_gateway)):
    async with gateway.reader() as db:
        return await tag_svc.list_tags(db)


@router.get("/popular", response_model=list[TagResponse])
async def tag_popular(
    limit: int = Query(10, ge=1, le=100),
    gateway: TransactionGateway = Depends(get_gateway),
):
    async with gateway.reader() as db:
        return await tag_svc.popular_tags(db, limit)


@router.post("", status_code=201, response_model=TagResponse)
async def tag_create(
    data: TagCreate,
    user_id: str = Depends(get_current_user),
    gateway: TransactionGateway = Depends(get_gateway),
):
    return await gateway.run(lambda tx: tag_svc.create_tag(tx, data.name, data.color))

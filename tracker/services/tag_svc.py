"""Tag service.

Usage counts are never written here; they belong to tag_usage_svc.
"""

from __future__ import annotations

import random
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..colors import TAG_PALETTE, is_hex_color, pick_color
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.tag import Tag


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Tag name must not be empty")
    if len(cleaned) > 100:
        raise ValidationError("Tag name must be at most 100 characters")
    return cleaned


def _clean_color(color: str | None, rng: random.Random | None) -> str:
    if color is None:
        return pick_color(TAG_PALETTE, rng)
    if not is_hex_color(color):
        raise ValidationError(f"Invalid color {color!r}; expected #RRGGBB")
    return color.upper()


async def list_tags(db: AsyncSession) -> list[Tag]:
    """All tags, most used first."""
    stmt = select(Tag).order_by(Tag.usage_count.desc(), Tag.name)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def popular_tags(db: AsyncSession, limit: int = 10) -> list[Tag]:
    stmt = (
        select(Tag)
        .where(Tag.usage_count > 0)
        .order_by(Tag.usage_count.desc(), Tag.name)
        .limit(max(1, limit))
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_tag(db: AsyncSession, tag_id: uuid.UUID) -> Tag | None:
    stmt = select(Tag).where(Tag.id == tag_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_tag_by_name(db: AsyncSession, name: str) -> Tag | None:
    stmt = select(Tag).where(Tag.name == name.strip())
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def create_tag(
    tx: AsyncSession,
    name: str,
    color: str | None = None,
    *,
    rng: random.Random | None = None,
) -> Tag:
    name = _clean_name(name)
    if await get_tag_by_name(tx, name):
        raise ConflictError(f"A tag named {name!r} already exists")
    tag = Tag(name=name, color=_clean_color(color, rng), usage_count=0)
    tx.add(tag)
    await tx.flush()
    return tag


async def get_or_create_tags(
    tx: AsyncSession, names: list[str], *, rng: random.Random | None = None
) -> list[Tag]:
    """Resolve names to tags, creating the missing ones. Order follows ``names``."""
    tags: list[Tag] = []
    seen: set[str] = set()
    for raw in names:
        name = _clean_name(raw)
        if name in seen:
            continue
        seen.add(name)
        tag = await get_tag_by_name(tx, name)
        if tag is None:
            tag = await create_tag(tx, name, rng=rng)
        tags.append(tag)
    return tags


async def update_tag(
    tx: AsyncSession,
    tag_id: uuid.UUID,
    *,
    name: str | None = None,
    color: str | None = None,
) -> Tag:
    tag = await get_tag(tx, tag_id)
    if tag is None:
        raise NotFoundError("Tag", tag_id)
    if name is not None:
        name = _clean_name(name)
        if name != tag.name:
            existing = await get_tag_by_name(tx, name)
            if existing is not None:
                raise ConflictError(f"A tag named {name!r} already exists")
            tag.name = name
    if color is not None:
        tag.color = _clean_color(color, None)
    await tx.flush()
    return tag


async def delete_tag(tx: AsyncSession, tag_id: uuid.UUID) -> None:
    """Delete a tag; its associations go with it (FK cascade)."""
    tag = await get_tag(tx, tag_id)
    if tag is None:
        raise NotFoundError("Tag", tag_id)
    await tx.delete(tag)
    await tx.flush()

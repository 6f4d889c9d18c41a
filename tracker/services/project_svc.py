"""Project service."""

from __future__ import annotations

import random
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..colors import PROJECT_PALETTE, is_hex_color, pick_color
from ..errors import ValidationError
from ..models.project import Project


async def list_projects(db: AsyncSession, *, owner_id: str | None = None) -> list[Project]:
    stmt = select(Project).where(Project.is_archived.is_(False))
    if owner_id:
        stmt = stmt.where(Project.owner_id == owner_id)
    stmt = stmt.order_by(Project.name)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_project(db: AsyncSession, project_id: uuid.UUID) -> Project | None:
    stmt = select(Project).where(Project.id == project_id)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def create_project(
    tx: AsyncSession,
    name: str,
    owner_id: str,
    *,
    description: str | None = None,
    color: str | None = None,
    rng: random.Random | None = None,
) -> Project:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Project name must not be empty")
    if color is not None and not is_hex_color(color):
        raise ValidationError(f"Invalid color {color!r}; expected #RRGGBB")
    project = Project(
        name=name,
        owner_id=owner_id,
        description=description,
        color=color or pick_color(PROJECT_PALETTE, rng),
    )
    tx.add(project)
    await tx.flush()
    return project

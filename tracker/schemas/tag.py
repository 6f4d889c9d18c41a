"""Tag schemas."""

from __future__ import annotations

import uuid

from pydantic import BaseModel


class TagCreate(BaseModel):
    name: str
    color: str | None = None


class TagUpdate(BaseModel):
    name: str | None = None
    color: str | None = None


class TagResponse(BaseModel):
    id: uuid.UUID
    name: str
    color: str
    usage_count: int

    model_config = {"from_attributes": True}

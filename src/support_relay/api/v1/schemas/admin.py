from __future__ import annotations

from pydantic import BaseModel, Field


class UpdateNotesRequest(BaseModel):
    notes: str | None = Field(None, max_length=5000)


class UpdateTagsRequest(BaseModel):
    tags: list[str] = []

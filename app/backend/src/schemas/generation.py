"""Invoice generation request and result schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class GenerateRequest(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)
    teacher_ids: list[int] | None = Field(default=None, alias="teacherIds")
    dry_run: bool = Field(default=False, alias="dryRun")

    model_config = ConfigDict(populate_by_name=True)


class GenerationSummary(BaseModel):
    total: int
    created: int
    adjusted: int
    adjustments_created: int
    skipped: int
    failed: int


class GenerationResultsRead(BaseModel):
    month: int
    year: int
    dry_run: bool
    summary: GenerationSummary
    invoices: list[dict[str, Any]] = []
    skipped: list[dict[str, Any]] = []
    errors: list[dict[str, Any]] = []


class GenerationEnvelope(BaseModel):
    success: bool = True
    message: str
    results: GenerationResultsRead

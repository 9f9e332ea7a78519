"""Run-related Pydantic schemas."""

from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from outlight.schemas.job import JobOutcome


class RunCreate(BaseModel):
    """Schema for submitting a prompt batch."""

    provider: str
    prompts: List[str]
    product_id: Optional[str] = None
    custom_url: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)
    concurrency: int = 1


class Progress(BaseModel):
    """Completed vs total prompts."""

    completed: int
    total: int


class OutcomeRecord(BaseModel):
    """One reported outcome, in arrival order."""

    index: int  # position of the prompt in the submitted batch
    prompt: str
    outcome: Annotated[JobOutcome, Field(discriminator="kind")]


class RunSummary(BaseModel):
    """Short run description used in listings."""

    run_id: UUID
    name: str
    provider: str
    status: str  # 'running', 'done', 'cancelled', 'error'
    progress: Progress
    created_at: datetime


class RunDetail(RunSummary):
    """Full run state returned by the query endpoint."""

    reference_url: Optional[str]
    concurrency: int
    outcomes: List[OutcomeRecord]
    error: Optional[str] = None
    diagnostic: Optional[Any] = None


class RunListResponse(BaseModel):
    """All registered runs plus the active selection."""

    runs: List[RunSummary]
    active_run_id: Optional[UUID] = None

"""Pydantic schemas for airdrop task views, claim payloads and cycle summaries."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from stockcoin.db.models import TaskStatus, UserTaskStatus


class AirdropTaskResponse(BaseModel):
    """An airdrop task as seen by administrators."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str = ""
    reward_amount: int
    task_type: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: TaskStatus


class AirdropTaskCreate(BaseModel):
    """Input for creating an airdrop task."""

    id: int = Field(..., ge=1)
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    reward_amount: int = Field(..., ge=0, lt=2**256)
    task_type: str | None = Field(default=None, max_length=20)
    start_time: datetime | None = None
    end_time: datetime | None = None


class UserTaskView(AirdropTaskResponse):
    """A task together with one user's participation, if any."""

    user_status: UserTaskStatus | None = None
    address: str | None = None
    proof: str | None = None
    claimed_at: datetime | None = None
    completed_at: datetime | None = None
    rewarded_at: datetime | None = None
    tx_hash: str | None = None


class ClaimPayload(BaseModel):
    """Arguments for the contract's ``claim(taskId, amount, proof)``."""

    task_id: int
    address: str
    amount: int
    proof: list[str]
    calldata: str | None = Field(
        default=None,
        description="ABI-packed claim call data, when an ABI was supplied",
    )


class TaskCycleSummary(BaseModel):
    """Per-task outcome of one distribution cycle."""

    task_id: int
    status: str
    root: str | None = None
    leaf_count: int = 0
    updated_count: int = 0
    rejected: list[str] = Field(default_factory=list)
    error: str | None = None


class CycleSummary(BaseModel):
    """Outcome of one distribution cycle."""

    started_at: datetime
    finished_at: datetime
    tasks: list[TaskCycleSummary]
    tx_hash: str | None = None
    publish_error: str | None = None

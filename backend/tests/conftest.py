"""
Pytest fixtures for backend testing.
Provides isolated settings and in-memory stores for the distribution pipeline.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from datetime import UTC, datetime

import pytest

from stockcoin.core.config import get_settings
from stockcoin.db.models import AirdropTask, AirdropUserTask, TaskStatus, UserTaskStatus
from stockcoin.modules.airdrop.stores import BulkUpdateResult

# Well-known development key (Hardhat/Anvil account #0); never funded outside local nodes.
TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_CONTRACT_ADDRESS = "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep tests independent of the developer's environment and .env file."""
    monkeypatch.setenv("ENVIRONMENT", "development")
    monkeypatch.setenv("DEBUG", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def make_task(task_id: int, reward_amount: int = 100, *, status: TaskStatus = TaskStatus.ACTIVE) -> AirdropTask:
    return AirdropTask(
        id=task_id,
        name=f"task-{task_id}",
        description="",
        reward_amount=reward_amount,
        status=status,
    )


def make_record(
    task_id: int,
    address: str,
    *,
    user_id: str | None = None,
    status: UserTaskStatus = UserTaskStatus.COMPLETED,
    proof: str = "",
) -> AirdropUserTask:
    return AirdropUserTask(
        user_id=user_id or f"user-{address[-4:]}",
        task_id=task_id,
        address=address,
        status=status,
        claimed_at=datetime.now(UTC),
        proof=proof,
    )


class FakeTaskStore:
    """In-memory ``TaskStore``."""

    def __init__(self, tasks: Sequence[AirdropTask]) -> None:
        self.tasks = list(tasks)

    async def list_active(self) -> list[AirdropTask]:
        return [task for task in self.tasks if task.status == TaskStatus.ACTIVE]

    async def get_reward_amount(self, task_id: int) -> int:
        for task in self.tasks:
            if task.id == task_id:
                return int(task.reward_amount)
        raise LookupError(f"Airdrop task {task_id} not found")


class FakeUserTaskStore:
    """In-memory ``UserTaskStore`` recording every persisted proof."""

    def __init__(self, records: Sequence[AirdropUserTask], *, failing: set[str] | None = None) -> None:
        self.records = list(records)
        self.failing = failing or set()
        self.persisted: dict[tuple[str, int], str] = {}
        self.write_calls: list[list[tuple[str, int]]] = []

    async def list_by_task_ids(self, task_ids: Sequence[int]) -> list[AirdropUserTask]:
        wanted = set(task_ids)
        return [record for record in self.records if record.task_id in wanted]

    async def bulk_update_proof(self, records: Sequence[AirdropUserTask]) -> BulkUpdateResult:
        outcome = BulkUpdateResult()
        self.write_calls.append([(r.address, r.task_id) for r in records])
        for record in records:
            if record.address in self.failing:
                outcome.errors.append(f"{record.address}/{record.task_id}: write failed")
                continue
            self.persisted[(record.address, record.task_id)] = record.proof
            outcome.updated_count += 1
        return outcome

"""
Distribution cycle: per-task Merkle trees, proof write-back, root publication.

One cycle loads every active task and all of its user-task records, builds
one sorted-pair tree per task, writes each participant's proof back onto
their record and publishes every resulting root in a single transaction.

Proofs are recomputed from scratch on every cycle, including for records
that were already rewarded. The tree is a pure function of the task's leaf
set, so an unchanged set yields the same root and the same proof strings,
and a cycle interrupted at any point can simply be run again.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum

from stockcoin.core.crypto.hashing import HashFunction, to_hex
from stockcoin.core.crypto.leaf import EncodingError, LeafEncoder
from stockcoin.core.crypto.merkle import EmptyInputError, MerkleTree
from stockcoin.core.crypto.proof import LeafNotFoundError, prove_leaf, serialize_proof
from stockcoin.core.logging import get_logger
from stockcoin.db.models import ELIGIBLE_STATUSES, AirdropTask, AirdropUserTask
from stockcoin.modules.airdrop.publisher import RootPublisher, SubmissionError
from stockcoin.modules.airdrop.schemas import CycleSummary, TaskCycleSummary
from stockcoin.modules.airdrop.stores import TaskStore, UserTaskStore

logger = get_logger(__name__)


class TaskResultStatus(str, Enum):
    PUBLISHED = "published"
    COMPUTED = "computed"
    SKIPPED_EMPTY = "skipped_empty"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class TaskResult:
    task_id: int
    status: TaskResultStatus
    root: bytes | None = None
    leaf_count: int = 0
    updated_count: int = 0
    rejected: list[str] = field(default_factory=list)
    error: str | None = None
    fingerprint: bytes | None = field(default=None, repr=False)

    def to_summary(self) -> TaskCycleSummary:
        return TaskCycleSummary(
            task_id=self.task_id,
            status=self.status.value,
            root=to_hex(self.root) if self.root is not None else None,
            leaf_count=self.leaf_count,
            updated_count=self.updated_count,
            rejected=list(self.rejected),
            error=self.error,
        )


@dataclass(slots=True)
class CycleReport:
    started_at: datetime
    finished_at: datetime
    results: list[TaskResult] = field(default_factory=list)
    tx_hash: str | None = None
    publish_error: str | None = None

    @property
    def roots(self) -> list[tuple[int, bytes]]:
        """``(task_id, root)`` for every task that produced a root."""
        return [(r.task_id, r.root) for r in self.results if r.root is not None]

    def result_for(self, task_id: int) -> TaskResult | None:
        return next((r for r in self.results if r.task_id == task_id), None)

    def to_summary(self) -> CycleSummary:
        return CycleSummary(
            started_at=self.started_at,
            finished_at=self.finished_at,
            tasks=[r.to_summary() for r in self.results],
            tx_hash=self.tx_hash,
            publish_error=self.publish_error,
        )


@dataclass(slots=True)
class EncodedTask:
    """Leaves of one task, paired with the records they were encoded from."""

    task_id: int
    entries: list[tuple[AirdropUserTask, bytes]] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)

    def fingerprint(self, hash_fn: HashFunction) -> bytes:
        """Order-independent digest of the leaf set."""
        return hash_fn(b"".join(sorted(hash_fn(leaf) for _, leaf in self.entries)))


def encode_task_leaves(
    task: AirdropTask,
    records: Sequence[AirdropUserTask],
    encoder: LeafEncoder,
) -> EncodedTask:
    """Encode every eligible record of ``task``; malformed records are rejected."""
    encoded = EncodedTask(task_id=task.id)
    for record in records:
        if record.status not in ELIGIBLE_STATUSES:
            continue
        try:
            leaf = encoder.encode(record.address, int(task.reward_amount), int(task.id))
        except EncodingError as exc:
            encoded.rejected.append(record.address)
            logger.warning(
                "airdrop_leaf_rejected",
                task_id=task.id,
                address=record.address,
                error=str(exc),
            )
            continue
        encoded.entries.append((record, leaf))
    return encoded


def build_task_proofs(encoded: EncodedTask, hash_fn: HashFunction) -> MerkleTree:
    """Build the task's tree and store each record's serialized proof on it.

    Raises
    ------
    EmptyInputError
        If the task has no encodable records.
    LeafNotFoundError
        If a record's leaf is missing from the tree it was built into.
    """
    tree = MerkleTree.build((leaf for _, leaf in encoded.entries), hash_fn)
    for record, leaf in encoded.entries:
        record.proof = serialize_proof(prove_leaf(tree, leaf))
    return tree


class TaskAggregator:
    """Run distribution cycles over the task and user-task stores."""

    def __init__(
        self,
        task_store: TaskStore,
        record_store: UserTaskStore,
        publisher: RootPublisher,
        *,
        encoder: LeafEncoder | None = None,
        max_parallel_tasks: int = 4,
        skip_unchanged: bool = False,
    ) -> None:
        self._tasks = task_store
        self._records = record_store
        self._publisher = publisher
        self._encoder = encoder or LeafEncoder()
        self._max_parallel_tasks = max(1, max_parallel_tasks)
        self._skip_unchanged = skip_unchanged
        self._published_fingerprints: dict[int, bytes] = {}

    async def run_cycle(self, *, cancel: asyncio.Event | None = None) -> CycleReport:
        """Run one full cycle and report per-task outcomes.

        When ``cancel`` is set, tasks that have not started yet are reported
        as cancelled, writes already in progress finish, and nothing is
        published.
        """
        started_at = datetime.now(UTC)
        tasks = await self._tasks.list_active()
        logger.info("airdrop_cycle_started", active_tasks=len(tasks))
        if not tasks:
            return CycleReport(started_at=started_at, finished_at=datetime.now(UTC))

        records = await self._records.list_by_task_ids([task.id for task in tasks])
        grouped: dict[int, list[AirdropUserTask]] = {task.id: [] for task in tasks}
        for record in records:
            if record.task_id in grouped:
                grouped[record.task_id].append(record)

        semaphore = asyncio.Semaphore(self._max_parallel_tasks)
        results = list(
            await asyncio.gather(
                *(self._run_task(task, grouped[task.id], semaphore, cancel) for task in tasks)
            )
        )
        report = CycleReport(started_at=started_at, finished_at=started_at, results=results)

        publishable = sorted(
            (r for r in results if r.status is TaskResultStatus.COMPUTED and r.root is not None),
            key=lambda r: r.task_id,
        )
        if publishable and cancel is not None and cancel.is_set():
            report.publish_error = "cycle cancelled before publication"
            logger.warning("airdrop_publish_skipped", reason="cancelled")
        elif publishable:
            await self._publish(report, publishable)

        report.finished_at = datetime.now(UTC)
        logger.info(
            "airdrop_cycle_completed",
            tasks=len(results),
            published=len([r for r in results if r.status is TaskResultStatus.PUBLISHED]),
            tx_hash=report.tx_hash,
            publish_error=report.publish_error,
        )
        return report

    async def _publish(self, report: CycleReport, publishable: list[TaskResult]) -> None:
        pairs = [(r.task_id, r.root) for r in publishable if r.root is not None]
        try:
            report.tx_hash = await self._publisher.publish(pairs)
        except SubmissionError as exc:
            # proofs stay written; the next cycle recomputes and republishes them
            report.publish_error = str(exc)
            logger.error("airdrop_publish_failed", task_ids=[p[0] for p in pairs], error=str(exc))
            return
        for result in publishable:
            result.status = TaskResultStatus.PUBLISHED
            if result.fingerprint is not None:
                self._published_fingerprints[result.task_id] = result.fingerprint

    async def _run_task(
        self,
        task: AirdropTask,
        records: list[AirdropUserTask],
        semaphore: asyncio.Semaphore,
        cancel: asyncio.Event | None,
    ) -> TaskResult:
        async with semaphore:
            if cancel is not None and cancel.is_set():
                return TaskResult(task_id=task.id, status=TaskResultStatus.CANCELLED)
            try:
                return await self._process_task(task, records)
            except Exception as exc:
                logger.exception("airdrop_task_failed", task_id=task.id)
                return TaskResult(task_id=task.id, status=TaskResultStatus.FAILED, error=str(exc))

    async def _process_task(self, task: AirdropTask, records: list[AirdropUserTask]) -> TaskResult:
        hash_fn = self._encoder.hash_fn
        encoded = encode_task_leaves(task, records, self._encoder)
        result = TaskResult(
            task_id=task.id,
            status=TaskResultStatus.COMPUTED,
            rejected=list(encoded.rejected),
        )

        if encoded.entries:
            result.fingerprint = encoded.fingerprint(hash_fn)
            if (
                self._skip_unchanged
                and self._published_fingerprints.get(task.id) == result.fingerprint
            ):
                result.status = TaskResultStatus.UNCHANGED
                result.leaf_count = len(encoded.entries)
                logger.info("airdrop_task_unchanged", task_id=task.id)
                return result

        try:
            tree = await asyncio.to_thread(build_task_proofs, encoded, hash_fn)
        except EmptyInputError:
            logger.info("airdrop_task_skipped", task_id=task.id, reason="no eligible records")
            result.status = TaskResultStatus.SKIPPED_EMPTY
            return result
        except LeafNotFoundError as exc:
            logger.error("airdrop_task_proof_failed", task_id=task.id, error=str(exc))
            result.status = TaskResultStatus.FAILED
            result.error = str(exc)
            return result

        write = await self._records.bulk_update_proof([record for record, _ in encoded.entries])
        result.root = tree.root
        result.leaf_count = tree.size
        result.updated_count = write.updated_count
        if not write.ok:
            result.error = f"{len(write.errors)} proof write(s) failed"
            logger.warning(
                "airdrop_proof_write_partial",
                task_id=task.id,
                updated=write.updated_count,
                failed=len(write.errors),
            )
        logger.info(
            "airdrop_task_computed",
            task_id=task.id,
            leaves=tree.size,
            stale=write.stale_count,
            root=to_hex(tree.root),
        )
        return result

"""Airdrop task administration and per-user task lifecycle."""

from __future__ import annotations

from datetime import UTC, datetime

from eth_utils import to_checksum_address
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from stockcoin.core.chain.abi import ContractAbi
from stockcoin.core.crypto.hashing import to_hex
from stockcoin.core.crypto.leaf import EncodingError, normalize_address
from stockcoin.core.crypto.proof import ProofFormatError, parse_proof
from stockcoin.core.logging import get_logger
from stockcoin.db.models import AirdropTask, AirdropUserTask, TaskStatus, UserTaskStatus
from stockcoin.modules.airdrop.schemas import AirdropTaskCreate, ClaimPayload, UserTaskView

logger = get_logger(__name__)

CLAIM_FUNCTION = "claim"


class AirdropError(ValueError):
    """Base error for invalid airdrop task operations."""


class TaskNotFoundError(AirdropError):
    """Raised when a task or user-task record does not exist."""


class TaskNotActiveError(AirdropError):
    """Raised when claiming a task that is not active."""


class TaskAlreadyClaimedError(AirdropError):
    """Raised when a user or address already holds a live claim on a task."""


class InvalidTaskTransitionError(AirdropError):
    """Raised when a user-task status change is not allowed."""


class ProofNotReadyError(AirdropError):
    """Raised when no distribution cycle has produced a proof for the record yet."""


def checksum_address(address: str) -> str:
    """Validate ``address`` and return its checksummed form."""
    try:
        return to_checksum_address(normalize_address(address))
    except EncodingError as exc:
        raise AirdropError(str(exc)) from exc


class AirdropTaskService:
    """
    Task CRUD and the user-side claim lifecycle.

    ``claimed -> completed -> rewarded``, with ``failed`` reachable from
    ``claimed`` and ``completed``. A failed record may be claimed again,
    which resets it to ``claimed`` and clears its proof.
    """

    def __init__(self, session: AsyncSession, *, abi: ContractAbi | None = None) -> None:
        self._session = session
        self._abi = abi

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def get_task(self, task_id: int) -> AirdropTask | None:
        result = await self._session.execute(select(AirdropTask).where(AirdropTask.id == task_id))
        return result.scalar_one_or_none()

    async def list_tasks(self, status: TaskStatus | None = None) -> list[AirdropTask]:
        query = select(AirdropTask).order_by(AirdropTask.id.asc())
        if status is not None:
            query = query.where(AirdropTask.status == status)
        result = await self._session.execute(query)
        return list(result.scalars().all())

    async def create_task(self, payload: AirdropTaskCreate) -> AirdropTask:
        if await self.get_task(payload.id) is not None:
            raise AirdropError(f"Airdrop task {payload.id} already exists")
        if payload.start_time and payload.end_time and payload.end_time <= payload.start_time:
            raise AirdropError("end_time must be after start_time")

        task = AirdropTask(
            id=payload.id,
            name=payload.name.strip(),
            description=payload.description,
            reward_amount=payload.reward_amount,
            task_type=payload.task_type,
            start_time=payload.start_time,
            end_time=payload.end_time,
            status=TaskStatus.ACTIVE,
        )
        self._session.add(task)
        await self._session.flush()
        logger.info("airdrop_task_created", task_id=task.id, reward_amount=task.reward_amount)
        return task

    async def update_task_status(self, task_id: int, status: TaskStatus) -> AirdropTask:
        task = await self._require_task(task_id)
        task.status = status
        await self._session.flush()
        logger.info("airdrop_task_status_updated", task_id=task_id, status=status.value)
        return task

    async def count_participants(self, task_id: int) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(AirdropUserTask).where(AirdropUserTask.task_id == task_id)
        )
        return int(result.scalar_one())

    # ------------------------------------------------------------------
    # User tasks
    # ------------------------------------------------------------------

    async def get_user_task(self, user_id: str, task_id: int) -> AirdropUserTask | None:
        result = await self._session.execute(
            select(AirdropUserTask).where(
                AirdropUserTask.user_id == user_id,
                AirdropUserTask.task_id == task_id,
            )
        )
        return result.scalar_one_or_none()

    async def claim_task(self, *, user_id: str, task_id: int, address: str) -> AirdropUserTask:
        """Register ``user_id`` as a participant of ``task_id`` paid to ``address``."""
        recipient = checksum_address(address)
        task = await self._require_task(task_id)
        if task.status != TaskStatus.ACTIVE:
            raise TaskNotActiveError(f"Airdrop task {task_id} is {task.status.value}")

        result = await self._session.execute(
            select(AirdropUserTask).where(
                AirdropUserTask.task_id == task_id,
                or_(
                    AirdropUserTask.user_id == user_id,
                    AirdropUserTask.address == recipient,
                ),
            )
        )
        existing = list(result.scalars().all())
        for record in existing:
            if record.user_id != user_id or record.status != UserTaskStatus.FAILED:
                raise TaskAlreadyClaimedError(
                    f"Airdrop task {task_id} already claimed for {record.address}"
                )

        now = datetime.now(UTC)
        if existing:
            record = existing[0]
            record.address = recipient
            record.status = UserTaskStatus.CLAIMED
            record.proof = ""
            record.claimed_at = now
            record.completed_at = None
        else:
            record = AirdropUserTask(
                user_id=user_id,
                task_id=task_id,
                address=recipient,
                status=UserTaskStatus.CLAIMED,
                claimed_at=now,
                proof="",
            )
            self._session.add(record)
        await self._session.flush()
        logger.info("airdrop_task_claimed", task_id=task_id, user_id=user_id, reclaim=bool(existing))
        return record

    async def complete_task(self, *, user_id: str, task_id: int) -> AirdropUserTask:
        record = await self._require_user_task(user_id, task_id)
        if record.status != UserTaskStatus.CLAIMED:
            raise InvalidTaskTransitionError(
                f"Cannot complete a {record.status.value} task (task {task_id})"
            )
        record.status = UserTaskStatus.COMPLETED
        record.completed_at = datetime.now(UTC)
        await self._session.flush()
        return record

    async def fail_task(self, *, user_id: str, task_id: int) -> AirdropUserTask:
        record = await self._require_user_task(user_id, task_id)
        if record.status not in (UserTaskStatus.CLAIMED, UserTaskStatus.COMPLETED):
            raise InvalidTaskTransitionError(
                f"Cannot fail a {record.status.value} task (task {task_id})"
            )
        record.status = UserTaskStatus.FAILED
        record.proof = ""
        await self._session.flush()
        return record

    async def record_reward_claim(self, *, address: str, task_id: int, tx_hash: str) -> AirdropUserTask:
        """Mark a record rewarded after its on-chain ``claim`` was confirmed.

        Replaying the same ``tx_hash`` is a no-op.
        """
        recipient = checksum_address(address)
        result = await self._session.execute(
            select(AirdropUserTask).where(
                AirdropUserTask.address == recipient,
                AirdropUserTask.task_id == task_id,
            )
        )
        record = result.scalar_one_or_none()
        if record is None:
            raise TaskNotFoundError(f"No airdrop claim for {recipient} on task {task_id}")

        if record.status == UserTaskStatus.REWARDED:
            if record.tx_hash == tx_hash:
                return record
            raise InvalidTaskTransitionError(f"Task {task_id} already rewarded to {recipient}")
        if record.status != UserTaskStatus.COMPLETED:
            raise InvalidTaskTransitionError(
                f"Cannot reward a {record.status.value} task (task {task_id})"
            )
        if not record.proof:
            raise ProofNotReadyError(f"No proof computed for {recipient} on task {task_id}")

        record.status = UserTaskStatus.REWARDED
        record.rewarded_at = datetime.now(UTC)
        record.tx_hash = tx_hash
        await self._session.flush()
        logger.info("airdrop_reward_recorded", task_id=task_id, address=recipient, tx_hash=tx_hash)
        return record

    async def list_user_tasks(self, user_id: str) -> list[UserTaskView]:
        """Every task, joined with ``user_id``'s participation where it exists."""
        result = await self._session.execute(
            select(AirdropTask, AirdropUserTask)
            .outerjoin(
                AirdropUserTask,
                (AirdropUserTask.task_id == AirdropTask.id) & (AirdropUserTask.user_id == user_id),
            )
            .order_by(AirdropTask.id.asc())
        )
        views: list[UserTaskView] = []
        for task, record in result.all():
            view = UserTaskView.model_validate(task)
            if record is not None:
                view = view.model_copy(
                    update={
                        "user_status": record.status,
                        "address": record.address,
                        "proof": record.proof or None,
                        "claimed_at": record.claimed_at,
                        "completed_at": record.completed_at,
                        "rewarded_at": record.rewarded_at,
                        "tx_hash": record.tx_hash,
                    }
                )
            views.append(view)
        return views

    async def get_claim_payload(self, *, user_id: str, task_id: int) -> ClaimPayload:
        """Arguments for redeeming ``user_id``'s reward on ``task_id``."""
        record = await self._require_user_task(user_id, task_id)
        if record.status == UserTaskStatus.REWARDED:
            raise InvalidTaskTransitionError(f"Task {task_id} reward already claimed")
        if record.status != UserTaskStatus.COMPLETED:
            raise InvalidTaskTransitionError(
                f"Cannot claim a reward for a {record.status.value} task (task {task_id})"
            )
        if not record.proof:
            raise ProofNotReadyError(f"Proof for task {task_id} has not been computed yet")

        task = await self._require_task(task_id)
        try:
            proof = parse_proof(record.proof)
        except ProofFormatError as exc:
            logger.error("airdrop_stored_proof_invalid", task_id=task_id, user_id=user_id)
            raise ProofNotReadyError(f"Stored proof for task {task_id} is unreadable") from exc

        amount = int(task.reward_amount)
        calldata = None
        if self._abi is not None:
            calldata = to_hex(self._abi.pack(CLAIM_FUNCTION, int(task_id), amount, proof))
        return ClaimPayload(
            task_id=task_id,
            address=record.address,
            amount=amount,
            proof=[to_hex(node) for node in proof],
            calldata=calldata,
        )

    async def _require_task(self, task_id: int) -> AirdropTask:
        task = await self.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(f"Airdrop task {task_id} not found")
        return task

    async def _require_user_task(self, user_id: str, task_id: int) -> AirdropUserTask:
        record = await self.get_user_task(user_id, task_id)
        if record is None:
            raise TaskNotFoundError(f"User {user_id} has not claimed task {task_id}")
        return record

"""API key pool with failure-classified cooldowns and round-robin rotation."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from luna_bot.core.errors import (
    AllCredentialsFailedError,
    CredentialsExhaustedError,
    RemoteCallError,
)
from luna_bot.core.types import FailureKind, utcnow
from luna_bot.log import get_logger

logger = get_logger(__name__)

COOLDOWNS: dict[FailureKind, timedelta] = {
    FailureKind.RATE_LIMITED: timedelta(minutes=5),
    FailureKind.FORBIDDEN: timedelta(minutes=10),
    FailureKind.SERVER_ERROR: timedelta(seconds=30),
    FailureKind.CLIENT_ERROR: timedelta(minutes=2),
    FailureKind.NETWORK: timedelta(seconds=30),
}


@dataclass
class CredentialSlot:
    index: int
    secret: str
    blocked: bool = False
    blocked_until: Optional[datetime] = None
    consecutive_failures: int = 0
    last_used: Optional[datetime] = None

    @property
    def number(self) -> int:
        """1-based slot number used in logs and status output."""
        return self.index + 1


@dataclass(frozen=True, slots=True)
class SlotStatus:
    number: int
    blocked: bool
    seconds_remaining: int
    consecutive_failures: int
    last_used: Optional[datetime]


def classify_failure(error: RemoteCallError) -> FailureKind:
    """Map a remote failure onto the cooldown table."""
    status = error.status_code
    if status is None:
        return FailureKind.NETWORK
    if status == 429:
        return FailureKind.RATE_LIMITED
    if status == 403:
        return FailureKind.FORBIDDEN
    if status >= 500:
        return FailureKind.SERVER_ERROR
    return FailureKind.CLIENT_ERROR


class KeyRotationManager:
    """Owns the key pool and the rotation cursor.

    Built once at startup and shared by reference. All methods run to
    completion without yielding except ``call_with_rotation``, which only
    suspends inside the remote request.
    """

    def __init__(self, secrets: list[str], clock: Callable[[], datetime] = utcnow):
        self._slots = [
            CredentialSlot(index=i, secret=secret)
            for i, secret in enumerate(s for s in secrets if s and s.strip())
        ]
        self._cursor = 0
        self._clock = clock
        logger.info("key_pool_loaded", key_count=len(self._slots))

    @property
    def slots(self) -> list[CredentialSlot]:
        return list(self._slots)

    @property
    def cursor(self) -> int:
        return self._cursor

    def __len__(self) -> int:
        return len(self._slots)

    def select_available_slot(self) -> CredentialSlot | None:
        """Return the first usable slot at or after the cursor, or None if all are blocked."""
        now = self._clock()
        for slot in self._slots:
            if slot.blocked and slot.blocked_until is not None and slot.blocked_until <= now:
                slot.blocked = False
                slot.blocked_until = None
                slot.consecutive_failures = 0
                logger.info("key_unblocked", slot=slot.number)

        count = len(self._slots)
        for offset in range(count):
            index = (self._cursor + offset) % count
            slot = self._slots[index]
            if not slot.blocked:
                self._cursor = index
                return slot
        return None

    def record_failure(self, index: int, kind: FailureKind) -> None:
        """Block a slot for the cooldown of ``kind`` and move the cursor past it."""
        slot = self._slots[index]
        cooldown = COOLDOWNS[kind]
        slot.blocked = True
        slot.blocked_until = self._clock() + cooldown
        slot.consecutive_failures += 1
        self._cursor = (index + 1) % len(self._slots)
        logger.warning(
            "key_blocked",
            slot=slot.number,
            reason=kind.value,
            cooldown_seconds=int(cooldown.total_seconds()),
            consecutive_failures=slot.consecutive_failures,
        )

    def record_success(self, index: int) -> None:
        slot = self._slots[index]
        slot.consecutive_failures = 0
        slot.last_used = self._clock()

    async def call_with_rotation(
        self,
        request: Callable[[str], Awaitable[str]],
        max_attempts: int | None = None,
    ) -> str:
        """Run ``request(secret)`` against successive keys until one succeeds.

        ``request`` must raise :class:`RemoteCallError` for failures that
        should cool a key down; anything else propagates unchanged.

        Raises:
            CredentialsExhaustedError: no key was selectable at the start of an attempt.
            AllCredentialsFailedError: every attempt failed.
        """
        attempts = len(self._slots) if max_attempts is None else max_attempts
        last_error: RemoteCallError | None = None

        for attempt in range(attempts):
            slot = self.select_available_slot()
            if slot is None:
                logger.error("all_keys_blocked", key_count=len(self._slots))
                raise CredentialsExhaustedError("All API keys are temporarily unavailable")

            logger.debug("key_attempt", slot=slot.number, attempt=attempt + 1)
            try:
                result = await request(slot.secret)
            except RemoteCallError as e:
                last_error = e
                logger.warning(
                    "key_call_failed",
                    slot=slot.number,
                    status=e.status_code,
                    error=str(e),
                )
                self.record_failure(slot.index, classify_failure(e))
                continue

            self.record_success(slot.index)
            logger.debug("key_call_succeeded", slot=slot.number)
            return result

        raise AllCredentialsFailedError("All API keys failed", last_error=last_error) from last_error

    def status_report(self) -> list[SlotStatus]:
        """Snapshot of every slot for the admin status reply."""
        now = self._clock()
        report = []
        for slot in self._slots:
            remaining = 0
            if slot.blocked and slot.blocked_until is not None:
                remaining = max(0, int((slot.blocked_until - now).total_seconds() + 0.999))
            report.append(
                SlotStatus(
                    number=slot.number,
                    blocked=slot.blocked,
                    seconds_remaining=remaining,
                    consecutive_failures=slot.consecutive_failures,
                    last_used=slot.last_used,
                )
            )
        return report

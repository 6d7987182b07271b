"""
Schedule lifecycle coordination.

The coordinator owns the state machine of a registered notification: it
persists records, arms one wake-up per schedule with the alarm backend,
advances or retires a schedule every time its wake-up fires and rebuilds
every wake-up after a restart.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterable, Mapping

from pydantic import ValidationError

from .calculator import OccurrenceCalculator
from .config import notification_settings
from .events import Event, EventManager, NotificationEvent
from .exceptions import (
    BackendError,
    NotificationSchedulerError,
    ScheduleValidationError,
    SinkError,
)
from .ids import NotificationId, normalize_notification_id, schedule_id_for
from .logging import scoped_schedule_id
from .schemas import (
    BatchScheduleResult,
    FireOutcome,
    OperationOutcome,
    RecoveryReport,
    RegistrationRequest,
    ScheduleRecord,
    ScheduleSpec,
    ScheduleSpecUpdate,
)

if TYPE_CHECKING:
    from .backends.base import AlarmBackend
    from .sinks import NotificationSink
    from .stores.base import ScheduleStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_backend_error(exc: Exception, schedule_id: str | None) -> BackendError:
    if isinstance(exc, BackendError):
        return exc
    return BackendError(f"Alarm backend failed: {exc}", schedule_id=schedule_id)


def _as_scheduler_error(exc: Exception, schedule_id: str | None) -> NotificationSchedulerError:
    # Stores raise PersistenceError themselves; anything else is a bug, not storage
    if isinstance(exc, NotificationSchedulerError):
        return exc
    return NotificationSchedulerError(f"{type(exc).__name__}: {exc}", schedule_id=schedule_id)


class ScheduleCoordinator:
    """
    Registers, fires, cancels and recovers notification schedules.

    The coordinator binds itself as the backend's wake-up callback, so the
    backend calls :meth:`fire` with a schedule id whenever a wake-up is due.

    Examples:
        >>> coordinator = ScheduleCoordinator(
        ...     store=MemoryScheduleStore(),
        ...     backend=AsyncioAlarmBackend(),
        ...     sink=LoggingNotificationSink(),
        ... )
        >>> schedule_id = await coordinator.register(
        ...     7,
        ...     ScheduleSpec.daily(datetime(2026, 1, 5, 9, 0), tz="Europe/Berlin"),
        ...     payload={"title": "Drink water"},
        ... )
        >>> await coordinator.recover_on_restart()  # after every process start
    """

    def __init__(
        self,
        store: ScheduleStore,
        backend: AlarmBackend,
        sink: NotificationSink,
        calculator: OccurrenceCalculator | None = None,
        event_manager: EventManager | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.store = store
        self.backend = backend
        self.sink = sink
        self.calculator = calculator or OccurrenceCalculator()
        self.events = event_manager or EventManager()

        self._clock = clock or _utcnow
        self._deliveries: set[asyncio.Task[None]] = set()

        self.backend.bind(self.fire)

    def _now(self) -> datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        # Stored instants have millisecond precision
        return now.replace(microsecond=now.microsecond - now.microsecond % 1000)

    async def _emit(
        self,
        type_: NotificationEvent,
        schedule_id: str | None = None,
        record: ScheduleRecord | None = None,
        outcome: FireOutcome | OperationOutcome | None = None,
        payload: Any | None = None,
    ) -> None:
        await self.events.dispatch(
            Event(
                type=type_,
                timestamp=self._now(),
                schedule_id=schedule_id,
                record=record,
                outcome=outcome,
                payload=payload,
            ),
        )

    async def _arm(self, schedule_id: str, at: datetime) -> str:
        try:
            return await self.backend.arm(schedule_id, at)
        except Exception as e:
            raise _as_backend_error(e, schedule_id) from e

    async def _disarm(self, token: str, schedule_id: str | None = None) -> None:
        try:
            await self.backend.disarm(token)
        except Exception as e:
            raise _as_backend_error(e, schedule_id) from e

    async def _disarm_quietly(self, token: str | None, schedule_id: str) -> None:
        """Disarm where a leftover wake-up is harmless (``fire`` ignores it)."""
        if not token:
            return
        try:
            await self._disarm(token, schedule_id)
        except BackendError:
            logger.warning("Could not disarm %s for %s", token, schedule_id, exc_info=True)

    # --- Registration ---

    async def register(
        self,
        notification_id: NotificationId,
        spec: ScheduleSpec,
        payload: Mapping[str, Any] | None = None,
    ) -> str:
        """
        Register (or replace) a notification schedule and arm its first wake-up.

        Args:
            notification_id: Caller's logical id, int or str.
            spec: When the notification fires.
            payload: Opaque data handed to the sink at fire time.

        Returns:
            The canonical schedule id.

        Raises:
            ScheduleValidationError: If the id is invalid, the payload is not
                JSON-serializable or the schedule has no future occurrence.
                Nothing is persisted.
            BackendError: If the wake-up could not be armed. The record stays
                stored and ``recover_on_restart`` will arm it later.
            PersistenceError: If the store failed.
        """
        schedule_id = schedule_id_for(notification_id)
        payload = dict(payload or {})
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            msg = f"Payload must be JSON-serializable: {e}"
            raise ScheduleValidationError(msg, schedule_id=schedule_id) from e

        now = self._now()

        if not spec.active:
            msg = "Cannot register an inactive schedule"
            raise ScheduleValidationError(msg, schedule_id=schedule_id)

        first = self.calculator.compute_next(spec, now)
        if first is None:
            msg = f"Schedule has no occurrence after {now.isoformat()}"
            raise ScheduleValidationError(msg, schedule_id=schedule_id)

        previous = await self.store.get(schedule_id)
        if previous is not None:
            await self._disarm_quietly(previous.backend_token, schedule_id)

        record = ScheduleRecord(
            schedule_id=schedule_id,
            notification_id=normalize_notification_id(notification_id),
            spec=spec,
            payload=payload,
            created_at=now,
            updated_at=now,
            next_occurrence=first,
        )
        await self.store.put(record)

        try:
            token = await self._arm(schedule_id, first)
        except BackendError as e:
            logger.exception("Failed to arm %s", schedule_id)
            await self._emit(
                NotificationEvent.ERROR, schedule_id, record, outcome=e.to_outcome()
            )
            raise

        def attach_token(current: ScheduleRecord) -> ScheduleRecord:
            # A fire that already ran owns the newer token
            if current.trigger_count != record.trigger_count or current.backend_token:
                return current
            return current.model_copy(update={"backend_token": token})

        try:
            stored = await self.store.update(schedule_id, attach_token)
        except Exception as e:
            await self._disarm_quietly(token, schedule_id)
            raise _as_scheduler_error(e, schedule_id) from e

        if stored is None:
            # Cancelled while arming
            await self._disarm_quietly(token, schedule_id)
            return schedule_id

        logger.info("Scheduled %s, first occurrence %s", schedule_id, first.isoformat())
        await self._emit(NotificationEvent.SCHEDULED, schedule_id, stored)
        return schedule_id

    async def register_many(
        self,
        items: Iterable[RegistrationRequest | tuple[Any, ...] | Mapping[str, Any]],
    ) -> BatchScheduleResult:
        """
        Register several notifications, collecting per-item failures.

        Items are ``RegistrationRequest`` objects, ``(notification_id, spec)``
        or ``(notification_id, spec, payload)`` tuples, or equivalent dicts.
        """
        result = BatchScheduleResult()
        for item in items:
            result.total += 1
            try:
                if isinstance(item, tuple):
                    request = RegistrationRequest(
                        notification_id=item[0],
                        spec=item[1],
                        payload=item[2] if len(item) > 2 else {},
                    )
                else:
                    request = RegistrationRequest.model_validate(item)
            except (ValidationError, IndexError) as e:
                result.failed.append(
                    OperationOutcome(kind=ScheduleValidationError.kind, message=str(e))
                )
                continue

            try:
                schedule_id = await self.register(
                    request.notification_id, request.spec, request.payload
                )
            except NotificationSchedulerError as e:
                result.failed.append(e.to_outcome())
            else:
                result.successful.append(schedule_id)

        return result

    # --- Firing ---

    async def fire(self, schedule_id: str) -> FireOutcome:
        """
        Handle a due wake-up. Never raises.

        Under the store's per-id lock the trigger count goes up by one, then
        the schedule is either re-armed for its next occurrence or retired.
        Once that state is stored, the payload is handed to the sink in the
        background.

        A wake-up that arrives early still counts as the armed occurrence:
        the next one is computed after the later of now and the armed instant.

        Returns:
            What happened. ``status`` is ``"skipped"`` for unknown or
            inactive records and ``"failed"`` when the store failed;
            a failed re-arm keeps status ``"rearmed"`` with the backend error
            listed in ``errors``.
        """
        with scoped_schedule_id(schedule_id):
            try:
                return await self._fire(schedule_id)
            except Exception as e:
                logger.exception("Unexpected failure firing %s", schedule_id)
                error = _as_scheduler_error(e, schedule_id).to_outcome()
                outcome = FireOutcome(
                    schedule_id=schedule_id,
                    status="failed",
                    fired_at=self._now(),
                    errors=[error],
                )
                await self._emit(
                    NotificationEvent.ERROR, schedule_id, outcome=error, payload=outcome
                )
                return outcome

    async def _fire(self, schedule_id: str) -> FireOutcome:
        now = self._now()
        errors: list[OperationOutcome] = []
        skipped = False

        async def advance(record: ScheduleRecord) -> ScheduleRecord:
            nonlocal skipped
            if not record.active:
                skipped = True
                return record

            count = record.trigger_count + 1
            fired = {"trigger_count": count, "last_triggered_at": now, "updated_at": now}

            spec = record.spec
            next_at = None
            if spec.max_occurrences is None or count < spec.max_occurrences:
                reference = now
                if record.next_occurrence is not None and record.next_occurrence > now:
                    reference = record.next_occurrence
                next_at = self.calculator.compute_next(spec, reference)

            if next_at is None:
                return record.retire(now).model_copy(update=fired)

            token = None
            try:
                token = await self._arm(schedule_id, next_at)
            except BackendError as e:
                logger.exception("Failed to re-arm %s", schedule_id)
                errors.append(e.to_outcome())

            return record.model_copy(
                update={**fired, "next_occurrence": next_at, "backend_token": token},
            )

        try:
            existing = await self.store.get(schedule_id)
            record = None
            if existing is not None and existing.active:
                record = await self.store.update(schedule_id, advance)
        except Exception as e:
            logger.exception("Failed to advance %s", schedule_id)
            error = _as_scheduler_error(e, schedule_id).to_outcome()
            outcome = FireOutcome(
                schedule_id=schedule_id, status="failed", fired_at=now, errors=[error]
            )
            await self._emit(NotificationEvent.ERROR, schedule_id, outcome=error, payload=outcome)
            return outcome

        if record is None or skipped:
            logger.debug("Ignoring wake-up for missing or inactive %s", schedule_id)
            return FireOutcome(schedule_id=schedule_id, status="skipped", fired_at=now)

        outcome = FireOutcome(
            schedule_id=schedule_id,
            status="rearmed" if record.active else "retired",
            fired_at=now,
            trigger_count=record.trigger_count,
            next_occurrence=record.next_occurrence,
            errors=errors,
        )

        if record.active:
            logger.info(
                "Fired %s (#%d), next occurrence %s",
                schedule_id,
                record.trigger_count,
                record.next_occurrence.isoformat(),
            )
        else:
            logger.info("Fired %s (#%d), schedule retired", schedule_id, record.trigger_count)

        self._deliver(record)

        await self._emit(NotificationEvent.FIRED, schedule_id, record, outcome=outcome)
        if not record.active:
            await self._emit(NotificationEvent.RETIRED, schedule_id, record, outcome=outcome)
        for error in errors:
            await self._emit(NotificationEvent.ERROR, schedule_id, record, outcome=error)
        return outcome

    def _deliver(self, record: ScheduleRecord) -> None:
        task = asyncio.create_task(self._display(record))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _display(self, record: ScheduleRecord) -> None:
        with scoped_schedule_id(record.schedule_id):
            try:
                await self.sink.display(dict(record.payload))
            except Exception as e:
                logger.exception("Sink failed to display %s", record.schedule_id)
                error = SinkError(
                    f"Failed to display notification: {e}",
                    schedule_id=record.schedule_id,
                )
                await self._emit(
                    NotificationEvent.ERROR,
                    record.schedule_id,
                    record,
                    outcome=error.to_outcome(),
                )

    # --- Cancellation ---

    async def cancel(self, schedule_id: str) -> bool:
        """
        Remove a schedule and disarm its pending wake-up.

        Returns:
            True if a record was removed, False for unknown ids.

        Raises:
            BackendError: If disarming failed. The record is already gone,
                so a stray wake-up will be ignored.
        """
        record = await self.store.pop(schedule_id)
        if record is None:
            return False

        if record.backend_token:
            await self._disarm(record.backend_token, schedule_id)

        logger.info("Cancelled %s", schedule_id)
        await self._emit(NotificationEvent.CANCELLED, schedule_id, record)
        return True

    async def cancel_all(self) -> int:
        """
        Remove every schedule and disarm every pending wake-up.

        Returns:
            Number of records removed.

        Each record is removed under its own id lock, so a fire in flight
        finishes first and the token it armed is the one disarmed.

        Raises:
            BackendError: The first disarm failure, raised after all records
                are removed and every other token has been tried.
        """
        removed = 0
        failure: BackendError | None = None
        for stored in await self.store.list_all():
            record = await self.store.pop(stored.schedule_id)
            if record is None:
                continue
            removed += 1
            if not record.backend_token:
                continue
            try:
                await self._disarm(record.backend_token, record.schedule_id)
            except BackendError as e:
                logger.warning("Could not disarm %s", record.schedule_id, exc_info=True)
                failure = failure or e

        logger.info("Cancelled all schedules (%d removed)", removed)
        await self._emit(NotificationEvent.ALL_CANCELLED, payload=removed)

        if failure is not None:
            raise failure
        return removed

    # --- Recovery ---

    async def _rearm_or_retire(self, schedule_id: str, now: datetime) -> ScheduleRecord | None:
        stale_token: str | None = None

        async def transition(record: ScheduleRecord) -> ScheduleRecord:
            nonlocal stale_token
            if not record.active:
                return record

            next_at = None
            if not record.spec.is_exhausted(record.trigger_count, now):
                next_at = self.calculator.compute_next(record.spec, now)

            if next_at is None:
                stale_token = record.backend_token
                return record.retire(now)

            token = await self._arm(schedule_id, next_at)
            return record.model_copy(
                update={"next_occurrence": next_at, "backend_token": token, "updated_at": now},
            )

        record = await self.store.update(schedule_id, transition)
        if record is not None and not record.active:
            await self._disarm_quietly(stale_token, schedule_id)
        return record

    async def recover_on_restart(self) -> RecoveryReport:
        """
        Re-arm every stored schedule that still has a future occurrence.

        Active records are recomputed against the current time: those with a
        next occurrence are armed again, exhausted ones are retired. Backend
        and store failures are collected per record, leaving the record as
        it was for the next recovery. Inactive records are left alone.
        """
        now = self._now()
        report = RecoveryReport()

        for stored in await self.store.list_all():
            schedule_id = stored.schedule_id
            if not stored.active:
                report.skipped.append(schedule_id)
                continue

            try:
                record = await self._rearm_or_retire(schedule_id, now)
            except Exception as e:
                error = _as_scheduler_error(e, schedule_id)
                logger.exception("Failed to recover %s", schedule_id)
                report.failed.append(error.to_outcome())
                await self._emit(
                    NotificationEvent.ERROR, schedule_id, stored, outcome=error.to_outcome()
                )
                continue

            if record is None:
                report.skipped.append(schedule_id)
            elif record.active:
                report.rearmed.append(schedule_id)
            else:
                report.retired.append(schedule_id)
                await self._emit(NotificationEvent.RETIRED, schedule_id, record)

        logger.info(
            "Recovery finished: %d re-armed, %d retired, %d skipped, %d failed",
            len(report.rearmed),
            len(report.retired),
            len(report.skipped),
            len(report.failed),
        )
        await self._emit(NotificationEvent.RECOVERED, payload=report)
        return report

    async def reschedule(self, schedule_id: str) -> ScheduleRecord | None:
        """
        Recompute and re-arm one active schedule from the current time.

        Use after :meth:`update_spec` to make the new definition take effect
        before the already armed wake-up. Retires the schedule when it has no
        further occurrence.

        Returns:
            The stored record, or None for unknown ids.

        Raises:
            BackendError: If arming failed; the record is unchanged.
        """
        record = await self._rearm_or_retire(schedule_id, self._now())
        if record is not None:
            event = NotificationEvent.SCHEDULED if record.active else NotificationEvent.RETIRED
            await self._emit(event, schedule_id, record)
        return record

    # --- Updates ---

    async def update_spec(
        self,
        schedule_id: str,
        update: ScheduleSpecUpdate | Mapping[str, Any],
    ) -> ScheduleRecord | None:
        """
        Merge the set fields of ``update`` into a stored spec.

        The pending wake-up and ``next_occurrence`` are kept as they are;
        call :meth:`reschedule` to recompute. Deactivating a schedule clears
        its next occurrence and disarms it.

        Returns:
            The updated record, or None for unknown ids.

        Raises:
            ScheduleValidationError: If the merged spec is invalid or the
                update tries to reactivate an inactive schedule.
        """
        if not isinstance(update, ScheduleSpecUpdate):
            try:
                update = ScheduleSpecUpdate.model_validate(update)
            except ValidationError as e:
                raise ScheduleValidationError(str(e), schedule_id=schedule_id) from e

        now = self._now()
        stale_token: str | None = None

        def apply(record: ScheduleRecord) -> ScheduleRecord:
            nonlocal stale_token
            if update.active and not record.active:
                msg = "Inactive schedules cannot be reactivated; register them again"
                raise ScheduleValidationError(msg, schedule_id=schedule_id)
            try:
                spec = record.spec.merge(update)
            except ValidationError as e:
                raise ScheduleValidationError(str(e), schedule_id=schedule_id) from e

            changes: dict[str, Any] = {"spec": spec, "updated_at": now}
            if not spec.active:
                stale_token = record.backend_token
                changes.update(next_occurrence=None, backend_token=None)
            return record.model_copy(update=changes)

        record = await self.store.update(schedule_id, apply)
        if record is None:
            return None

        await self._disarm_quietly(stale_token, schedule_id)
        logger.info("Updated %s", schedule_id)
        await self._emit(NotificationEvent.UPDATED, schedule_id, record)
        return record

    async def cleanup_expired(self) -> int:
        """
        Remove expired records (inactive, exhausted or without a next
        occurrence), disarming any leftover wake-up.

        Returns:
            Number of records removed.
        """
        now = self._now()
        removed = 0
        for record in await self.store.list_all():
            if not record.is_expired(now):
                continue
            popped = await self.store.pop(
                record.schedule_id, predicate=lambda r: r.is_expired(now)
            )
            if popped is None:
                continue
            await self._disarm_quietly(popped.backend_token, popped.schedule_id)
            removed += 1

        if removed:
            logger.info("Removed %d expired schedules", removed)
        return removed

    async def get(self, schedule_id: str) -> ScheduleRecord | None:
        return await self.store.get(schedule_id)

    # --- Lifecycle ---

    async def shutdown(self, wait: bool = True) -> None:
        """
        Stop the backend and settle pending sink deliveries.

        Args:
            wait: If True, waits up to ``SINK_SHUTDOWN_TIMEOUT`` seconds for
                deliveries still running and cancels the rest.
                If False, cancels them immediately.
        """
        await self.backend.shutdown()

        if not self._deliveries:
            return

        pending = set(self._deliveries)
        if wait:
            _, pending = await asyncio.wait(
                pending, timeout=notification_settings.SINK_SHUTDOWN_TIMEOUT
            )
        for task in pending:
            task.cancel()
        await asyncio.gather(*self._deliveries, return_exceptions=True)

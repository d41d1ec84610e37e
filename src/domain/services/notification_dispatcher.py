"""Notification dispatcher: turns domain events into per-channel deliveries."""

import asyncio
import weakref
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import structlog

from core.deadline import deadline
from core.exceptions import PermanentError, TransientError
from domain.channels.delivery_channel import IDeliveryChannel
from domain.entities.event import DomainEvent, EventKind
from domain.entities.notification import (
    Channel,
    NotificationContent,
    NotificationKind,
    NotificationPreference,
    make_delivery_id,
)
from domain.repositories.unit_of_work import IUnitOfWork

logger = structlog.get_logger()


@dataclass
class DispatchPlan:
    """Who to notify about an event, and with which template."""

    kind: NotificationKind
    recipients: set[UUID]
    context: dict[str, Any] = field(default_factory=dict)


def _uuids(values: Iterable[Any]) -> set[UUID]:
    return {UUID(str(v)) for v in values if v}


def _task_context(event: DomainEvent) -> dict[str, Any]:
    task = event.payload.get("task") or {}
    return {"task_ref": event.payload.get("task_ref", ""), "title": task.get("title", "")}


def _watchers(event: DomainEvent) -> set[UUID]:
    task = event.payload.get("task") or {}
    return _uuids(task.get("watchers") or ())


class NotificationDispatcher:
    """Consumes domain events and fans them out to delivery channels.

    Events of one entity are handled one at a time; events of different
    entities run concurrently. Each (recipient, channel) delivery is its own
    unit of work: it is shielded from cancellation and its failure never
    blocks the others. Re-handling the same event is safe because channels
    deduplicate on the delivery id.
    """

    def __init__(
        self,
        uow_factory: Callable[[], IUnitOfWork],
        channels: Sequence[IDeliveryChannel],
        operation_timeout: float | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._channels: dict[Channel, IDeliveryChannel] = {c.name: c for c in channels}
        self._timeout = operation_timeout
        # Entries disappear once no handler holds the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    async def handle(self, event: DomainEvent) -> None:
        """Dispatch one event. Serialized per entity id."""
        lock = self._locks.get(event.partition_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[event.partition_key] = lock

        async with lock:
            await self._dispatch(event)

    async def _dispatch(self, event: DomainEvent) -> None:
        try:
            kind = EventKind(event.kind)
        except ValueError:
            logger.warning(
                "event_kind_unknown",
                kind=event.kind,
                event_id=str(event.event_id),
            )
            return

        plan = self.resolve_recipients(event, kind)
        if plan is None or not plan.recipients:
            logger.debug("event_no_recipients", kind=kind.value, event_id=str(event.event_id))
            return

        # Store failures propagate so the transport redelivers the whole event
        async with deadline(self._timeout, "resolve_preferences"), self._uow_factory() as uow:
            stored = await uow.notifications.get_preferences_for_users(sorted(plan.recipients))

        content = NotificationContent.render(
            plan.kind,
            plan.context,
            entity_type=event.entity_type,
            entity_id=event.entity_id,
            event_id=event.event_id,
            project_id=event.project_id,
        )

        units = []
        skipped: set[Channel] = set()
        for recipient_id in sorted(plan.recipients):
            preference = stored.get(recipient_id) or NotificationPreference(user_id=recipient_id)
            for channel_name in sorted(preference.enabled_channels(plan.kind)):
                channel = self._channels.get(channel_name)
                if channel is None:
                    skipped.add(channel_name)
                    continue
                delivery_id = make_delivery_id(event.event_id, recipient_id, channel_name)
                units.append(
                    asyncio.shield(self._deliver(channel, delivery_id, recipient_id, content))
                )

        if skipped:
            logger.debug(
                "delivery_channel_not_configured",
                channels=sorted(skipped),
                event_id=str(event.event_id),
            )
        if units:
            await asyncio.gather(*units)

    async def _deliver(
        self,
        channel: IDeliveryChannel,
        delivery_id: str,
        recipient_id: UUID,
        content: NotificationContent,
    ) -> None:
        log = logger.bind(
            channel=channel.name.value,
            delivery_id=delivery_id,
            recipient_id=str(recipient_id),
            event_id=str(content.event_id),
            kind=content.kind.value,
        )
        try:
            outcome = await channel.deliver(delivery_id, recipient_id, content)
        except TransientError as exc:
            # The channel has already exhausted its own retry policy
            log.warning("notification_delivery_failed", retryable=True, error=exc.message)
        except PermanentError as exc:
            log.error("notification_delivery_failed", retryable=False, error=exc.message)
        except Exception:
            log.exception("notification_delivery_error")
        else:
            log.info("notification_delivered", outcome=outcome.value)

    def resolve_recipients(self, event: DomainEvent, kind: EventKind) -> DispatchPlan | None:
        """Candidate recipients and template for an event of a known kind."""
        payload = event.payload
        actor = {event.actor_id}

        if kind == EventKind.TASK_CREATED:
            task = payload.get("task") or {}
            return DispatchPlan(
                NotificationKind.TASK_ASSIGNED,
                _uuids([task.get("assignee_id")]) - actor,
                _task_context(event),
            )

        if kind == EventKind.TASK_UPDATED:
            assignment = payload.get("assignment")
            if assignment:
                return DispatchPlan(
                    NotificationKind.TASK_ASSIGNED,
                    _uuids([assignment.get("assignee_id")]) - actor,
                    _task_context(event),
                )
            changes = payload.get("changes") or {}
            if set(changes) <= {"status"}:
                # TASK_STATUS_CHANGED covers it
                return None
            return DispatchPlan(
                NotificationKind.TASK_UPDATED,
                _watchers(event) - actor,
                {**_task_context(event), "changed_fields": ", ".join(sorted(changes))},
            )

        if kind == EventKind.TASK_STATUS_CHANGED:
            return DispatchPlan(
                NotificationKind.TASK_STATUS_CHANGED,
                _watchers(event) - actor,
                {
                    **_task_context(event),
                    "old_status": payload.get("old_status", ""),
                    "new_status": payload.get("new_status", ""),
                },
            )

        if kind == EventKind.TASK_COMMENTED:
            author = _uuids([payload.get("author_id")]) or actor
            return DispatchPlan(
                NotificationKind.TASK_COMMENTED,
                _watchers(event) - author - actor,
                {**_task_context(event), "excerpt": payload.get("excerpt", "")},
            )

        if kind == EventKind.TASK_DELETED:
            return DispatchPlan(
                NotificationKind.TASK_DELETED,
                _watchers(event) - actor,
                _task_context(event),
            )

        project_context = {"project_name": payload.get("project_name", "")}

        if kind == EventKind.PROJECT_MEMBER_ADDED:
            return DispatchPlan(
                NotificationKind.PROJECT_MEMBER_ADDED,
                _uuids([payload.get("user_id"), payload.get("owner_id")]),
                {**project_context, "role": payload.get("role", "")},
            )

        if kind == EventKind.PROJECT_MEMBER_REMOVED:
            if payload.get("self_removal"):
                return None
            return DispatchPlan(
                NotificationKind.PROJECT_MEMBER_REMOVED,
                _uuids([payload.get("user_id")]),
                project_context,
            )

        if kind == EventKind.PROJECT_OWNERSHIP_TRANSFERRED:
            return DispatchPlan(
                NotificationKind.PROJECT_OWNERSHIP_TRANSFERRED,
                _uuids([payload.get("new_owner_id")]),
                project_context,
            )

        # PROJECT_CREATED notifies nobody
        return None

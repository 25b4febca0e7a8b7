"""
Notification service: templated Updates with best-effort, retried delivery.

Handles:
- Rendering a named template into an Update (title, message, update_type)
- Persisting the Update as pending before any delivery attempt
- Delivery on a background thread pool, decoupled from the caller
- Bounded retry with exponential backoff, recording every attempt
- Marking updates read and listing a user's inbox

Delivery failures never propagate to the caller of `send`. After the last
attempt the Update stays `failed` (with last_error) and can be re-dispatched
later with `retry_failed`.
"""

from __future__ import annotations

import logging
import string
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Set, Tuple

from domain.errors import Forbidden, NotFound, NotificationDeliveryFailure, ValidationError
from domain.time import utc_now
from domain.update import Update, UpdateType
from domain.user import User
from repositories.update_repository import UpdateRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NotificationTemplate:
    update_type: UpdateType
    title: str
    message: str
    defaults: Tuple[Tuple[str, str], ...] = (("notes", ""),)


TEMPLATES: Mapping[str, NotificationTemplate] = {
    "lead_assigned": NotificationTemplate(
        UpdateType.ASSIGNMENT,
        "New lead assigned",
        "Lead #{lead_id} ({lead_name}) has been assigned to you by {admin_name}. {notes}",
    ),
    "lead_accepted": NotificationTemplate(
        UpdateType.ASSIGNMENT,
        "Your lead has been accepted",
        "Agent {agent_name} accepted lead #{lead_id} ({lead_name}) and is now working it. {notes}",
    ),
    "lead_rejected": NotificationTemplate(
        UpdateType.LEAD_STATUS,
        "Lead assignment rejected",
        "Agent {agent_name} rejected lead #{lead_id} ({lead_name}). {notes}",
    ),
    "lead_completed": NotificationTemplate(
        UpdateType.COMMISSION,
        "Commission earned",
        "Lead #{lead_id} ({lead_name}) sold for {final_price}. "
        "Your commission is {spotter_commission_amount}. {notes}",
    ),
    "lead_failed": NotificationTemplate(
        UpdateType.LEAD_STATUS,
        "Lead closed without a sale",
        "Agent {agent_name} closed lead #{lead_id} ({lead_name}): {reason}. {notes}",
    ),
    "lead_status": NotificationTemplate(
        UpdateType.LEAD_STATUS,
        "Update on lead #{lead_id}",
        "{message}",
        defaults=(),
    ),
    "general": NotificationTemplate(UpdateType.GENERAL, "{title}", "{message}", defaults=()),
}


class NotificationChannel(Protocol):
    """Transport for a rendered Update. Raises on delivery failure."""

    name: str

    def deliver(self, update: Update) -> None: ...


class LoggingChannel:
    """Writes each notification to the log; the Update row itself is the user's inbox."""

    name = "log"

    def deliver(self, update: Update) -> None:
        logger.info(
            "Notification %s to user=%s [%s] %s: %s",
            update.id,
            update.recipient_id,
            update.update_type.value,
            update.title,
            update.message,
        )


_formatter = string.Formatter()


def _render(text: str, variables: Mapping[str, Any], field: str) -> str:
    try:
        return " ".join(_formatter.vformat(text, (), dict(variables)).split())
    except KeyError as e:
        raise ValidationError(
            f"Missing template variable {e.args[0]!r}",
            {"variables": f"Missing value for '{e.args[0]}' in {field}."},
        )
    except (IndexError, ValueError) as e:
        raise ValidationError(f"Malformed template {field}: {e}", {"template_name": str(e)})


class NotificationDispatcher:
    """
    Creates Updates and delivers them through a channel.

    workers=0 delivers inline (synchronously) which scripts and tests use for
    deterministic results; any other value uses a background ThreadPoolExecutor.
    """

    def __init__(
        self,
        updates: UpdateRepository,
        channel: Optional[NotificationChannel] = None,
        *,
        templates: Mapping[str, NotificationTemplate] = TEMPLATES,
        max_attempts: int = 3,
        retry_base_delay: float = 0.5,
        workers: int = 4,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._updates = updates
        self._channel: NotificationChannel = channel or LoggingChannel()
        self._templates = dict(templates)
        self._max_attempts = max_attempts
        self._retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._clock = clock
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify") if workers > 0 else None
        )
        self._pending: Set[Future] = set()
        self._pending_lock = threading.Lock()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def render(self, template_name: str, variables: Mapping[str, Any]) -> Tuple[UpdateType, str, str]:
        template = self._templates.get(template_name)
        if template is None:
            raise ValidationError.for_field("template_name", f"Unknown template '{template_name}'.")
        merged: Dict[str, Any] = dict(template.defaults)
        merged.update({k: ("" if v is None else v) for k, v in variables.items()})
        title = _render(template.title, merged, "title")
        message = _render(template.message, merged, "message")
        return template.update_type, title, message

    def send(
        self,
        recipient_id: str,
        template_name: str,
        variables: Mapping[str, Any],
        *,
        lead_id: Optional[int] = None,
    ) -> Update:
        """
        Create a pending Update for `recipient_id` and schedule its delivery.

        Returns the Update as stored, before delivery completes.

        Raises:
            ValidationError: unknown template or missing variable (nothing stored).
        """

        update_type, title, message = self.render(template_name, variables)
        update = self._updates.insert(
            Update(
                id=0,
                recipient_id=recipient_id,
                title=title,
                message=message,
                update_type=update_type,
                template_name=template_name,
                lead_id=lead_id,
                created_at=self._clock(),
            )
        )
        logger.debug("Queued update %s (%s) for user=%s", update.id, template_name, recipient_id)
        self._schedule(update)
        return update

    def _schedule(self, update: Update) -> None:
        if self._executor is None:
            self._deliver_safely(update)
            return

        future = self._executor.submit(self._deliver_safely, update)
        with self._pending_lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.discard(future)

    def _deliver_safely(self, update: Update) -> Update:
        try:
            return self.deliver(update)
        except Exception:
            logger.exception("Unexpected error while delivering update %s", update.id)
            return update

    def deliver(self, update: Update) -> Update:
        """
        Attempt delivery up to max_attempts times, recording each attempt.

        Returns the final state of the Update.
        """

        for attempt in range(1, self._max_attempts + 1):
            try:
                self._channel.deliver(update)
            except Exception as e:
                update = self._updates.save_delivery(update.attempt_failed(self._clock(), str(e)))
                if attempt >= self._max_attempts:
                    failure = NotificationDeliveryFailure(
                        f"Delivery of update {update.id} failed after {attempt} attempts: {e}",
                        update_id=update.id,
                        attempts=update.delivery_attempts,
                    )
                    logger.warning("%s", failure)
                    return update

                delay = self._retry_base_delay * (2 ** (attempt - 1))
                logger.info(
                    "Retry %d/%d for update %s via %s in %.2fs: %s",
                    attempt,
                    self._max_attempts,
                    update.id,
                    self._channel.name,
                    delay,
                    e,
                )
                self._sleep(delay)
            else:
                update = self._updates.save_delivery(update.attempt_succeeded(self._clock()))
                logger.debug("Delivered update %s on attempt %d", update.id, attempt)
                return update

        return update

    def retry_failed(self, max_total_attempts: Optional[int] = None) -> int:
        """
        Re-dispatch failed updates whose total attempts are below the cap.

        Each re-dispatch runs another bounded round of attempts. Returns the number
        of updates scheduled.
        """

        cap = max_total_attempts if max_total_attempts is not None else self._max_attempts * 3
        failed = self._updates.list_failed(cap)
        for update in failed:
            self._schedule(update)
        if failed:
            logger.info("Re-dispatched %d failed updates", len(failed))
        return len(failed)

    def list_for_user(self, user_id: str) -> List[Update]:
        return self._updates.list_for_user(user_id)

    def mark_read(self, update_id: int, actor: User) -> Update:
        update = self._updates.get(update_id)
        if update is None:
            raise NotFound(f"Update not found: {update_id}")
        if update.recipient_id != actor.id:
            raise Forbidden("Only the recipient may mark an update as read")
        if update.is_read:
            return update
        return self._updates.save_read(update.mark_read(self._clock()))

    def flush(self, timeout: Optional[float] = None) -> None:
        """Block until every scheduled delivery has finished."""

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            with self._pending_lock:
                pending = list(self._pending)
            if not pending:
                return
            for future in pending:
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                future.exception(timeout=remaining)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)


__all__ = [
    "LoggingChannel",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationTemplate",
    "TEMPLATES",
]

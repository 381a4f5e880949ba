import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import User

logger = logging.getLogger(__name__)

PushFn = Callable[[str, str, dict[str, Any]], None]


@dataclass(frozen=True)
class Subscription:
    subject: str
    queue: asyncio.Queue
    loop: asyncio.AbstractEventLoop


class PushHub:
    """Fan-out of push events to the WebSocket sessions of one subject.

    Publishing never blocks and is safe from worker threads; events for a
    subject with no open session are dropped.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscriptions: dict[str, list[Subscription]] = {}

    def subscribe(self, subject: str) -> Subscription:
        subscription = Subscription(
            subject=subject,
            queue=asyncio.Queue(),
            loop=asyncio.get_running_loop(),
        )
        with self._lock:
            self._subscriptions.setdefault(subject, []).append(subscription)
        logger.info(f"push_connect: subject={subject}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            current = self._subscriptions.get(subscription.subject, [])
            remaining = [item for item in current if item is not subscription]
            if remaining:
                self._subscriptions[subscription.subject] = remaining
            else:
                self._subscriptions.pop(subscription.subject, None)
        logger.info(f"push_disconnect: subject={subscription.subject}")

    def connected(self, subject: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(subject, []))

    def publish(self, subject: str, event: str, payload: dict[str, Any]) -> int:
        with self._lock:
            targets = list(self._subscriptions.get(subject, []))
        message = {"event": event, "payload": payload}
        delivered = 0
        for subscription in targets:
            try:
                subscription.loop.call_soon_threadsafe(
                    subscription.queue.put_nowait, message
                )
            except RuntimeError:
                logger.info(f"push_drop: subject={subject} event={event} reason=loop_closed")
                continue
            delivered += 1
        return delivered


class NotificationService:
    def __init__(self, push: Optional[PushFn] = None) -> None:
        self.push = push

    def _emit(self, subject: str, event: str, payload: dict[str, Any]) -> None:
        if self.push is not None:
            self.push(subject, event, payload)

    def send_budget_alert(self, subject: str, message: str) -> None:
        logger.info(f"budget_alert: subject={subject} message={message}")
        self._emit(subject, "budgetAlert", {"message": message})

    def send_emotional_spending_alert(self, subject: str, message: str) -> None:
        logger.info(f"emotional_spending_alert: subject={subject} message={message}")
        self._emit(subject, "emotionalSpendingAlert", {"message": message})

    def send_anomaly_alert(self, subject: str, alert: dict[str, Any]) -> None:
        logger.info(f"anomaly_alert: subject={subject} message={alert.get('message')}")
        self._emit(subject, "anomalyAlert", alert)

    def _report_recipients(self, session: Session, preference: str) -> list[User]:
        users = session.scalars(select(User).where(User.is_active.is_(True))).all()
        return [
            user
            for user in users
            if getattr(user.preferences.notifications, preference)
        ]

    def send_weekly_reports(self, session: Session) -> int:
        recipients = self._report_recipients(session, "weekly_report")
        for user in recipients:
            # Delivery is a placeholder until an email provider is wired in.
            logger.info(f"weekly_report: email={user.email}")
        logger.info(f"weekly_reports_sent: count={len(recipients)}")
        return len(recipients)

    def send_monthly_reports(self, session: Session) -> int:
        recipients = self._report_recipients(session, "monthly_report")
        for user in recipients:
            logger.info(f"monthly_report: email={user.email}")
        logger.info(f"monthly_reports_sent: count={len(recipients)}")
        return len(recipients)

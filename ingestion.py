"""Inbox and SMS synchronisation entry points.

Only the sweep is implemented: users who enabled an integration are visited
and their ``last_sync`` is stamped. No messages are fetched or parsed yet.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from database import touch
from models import User
from periods import local_now

logger = logging.getLogger(__name__)


class _IntegrationSync:
    integration = ""

    def sync_all_users(self, session: Session, now: Optional[datetime] = None) -> int:
        now = now or local_now()
        logger.info(f"{self.integration}_sync_start")
        users = session.scalars(select(User).where(User.is_active.is_(True))).all()
        synced = 0
        for user in users:
            state = getattr(user.integrations, self.integration)
            if not state.enabled:
                continue
            logger.info(f"{self.integration}_sync: email={user.email}")
            state.last_sync = now
            touch(user, "integrations")
            synced += 1
        session.flush()
        logger.info(f"{self.integration}_sync_done: users={synced}")
        return synced


class EmailParser(_IntegrationSync):
    integration = "gmail"


class SmsParser(_IntegrationSync):
    integration = "sms"

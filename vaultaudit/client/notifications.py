"""
Caller side of local notifications.

The OS layer delivers whatever sits in the outbox; this module decides what
goes in: preference gating, the "already sent recently" log, expiry
reminders and the daily weak-password digest.
"""
import json
import logging
from datetime import datetime, timedelta
from typing import ClassVar, Iterable, List, Optional
from uuid import uuid4
from pydantic import NaiveDatetime
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Field, Session, select

from vaultaudit.client.database import make_engine
from vaultaudit.config import settings
from vaultaudit.core.expiry import reminder_schedule
from vaultaudit.core.models import (
    AlertType,
    DailyDigestSettings,
    ExpirySettings,
    NotificationPreferences,
    PasswordRecord,
    SecurityAlert,
)
from vaultaudit.core.strength import PasswordStrengthAnalyzer

logger = logging.getLogger(__name__)

DAILY_WEAK_CHECK_KEY = "weak_password_daily"
DAILY_WINDOW = timedelta(minutes=30)
WEAK_MAX_SCORE = 2


# --- Outbox tables ---

class OutboxNotification(SQLModel, table=True):
    __tablename__: ClassVar[str] = "notification_outbox"
    __table_args__ = {"extend_existing": True}
    id: str = Field(primary_key=True)
    kind: str = Field(index=True)
    title: str
    body: str
    payload: str = "{}"
    password_id: Optional[str] = Field(default=None, index=True)
    # None means deliver as soon as possible
    deliver_at: Optional[NaiveDatetime] = None
    created_at: NaiveDatetime = Field(default_factory=datetime.now)
    delivered: bool = Field(default=False)


class NotificationLogEntry(SQLModel, table=True):
    __tablename__: ClassVar[str] = "notification_log"
    __table_args__ = {"extend_existing": True}
    key: str = Field(primary_key=True)
    sent_at: NaiveDatetime


class NotificationOutbox:
    def __init__(self, db_url: str | None = None, engine: Engine | None = None):
        self.engine = engine or make_engine(db_url or settings.DATABASE_URL)
        SQLModel.metadata.create_all(self.engine)

    def add(self,
            notification_id: str,
            kind: str,
            title: str,
            body: str,
            data: dict | None = None,
            password_id: str | None = None,
            deliver_at: datetime | None = None) -> str:
        with Session(self.engine) as session:
            session.add(OutboxNotification(
                id=notification_id,
                kind=kind,
                title=title,
                body=body,
                payload=json.dumps(data or {}, default=str),
                password_id=password_id,
                deliver_at=deliver_at,
            ))
            session.commit()
        logger.info(f"Queued notification {notification_id} ({kind})")
        return notification_id

    def exists(self, notification_id: str) -> bool:
        with Session(self.engine) as session:
            return session.get(OutboxNotification, notification_id) is not None

    def pending(self, now: datetime | None = None) -> List[OutboxNotification]:
        """Undelivered notifications that are due."""
        now = now or datetime.now()
        with Session(self.engine) as session:
            statement = select(OutboxNotification).where(OutboxNotification.delivered == False)  # noqa: E712
            rows = session.exec(statement).all()
            return [r for r in rows if r.deliver_at is None or r.deliver_at <= now]

    def mark_delivered(self, notification_ids: Iterable[str]):
        with Session(self.engine) as session:
            for nid in notification_ids:
                row = session.get(OutboxNotification, nid)
                if row:
                    row.delivered = True
                    session.add(row)
            session.commit()

    def cancel(self, notification_id: str) -> bool:
        with Session(self.engine) as session:
            row = session.get(OutboxNotification, notification_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
        logger.info(f"Cancelled notification {notification_id}")
        return True

    def cancel_for_password(self, password_id: str, kind: str) -> int:
        with Session(self.engine) as session:
            statement = select(OutboxNotification).where(
                OutboxNotification.password_id == password_id,
                OutboxNotification.kind == kind,
                OutboxNotification.delivered == False,  # noqa: E712
            )
            rows = session.exec(statement).all()
            for row in rows:
                session.delete(row)
            session.commit()
            return len(rows)

    def last_sent(self, key: str) -> Optional[datetime]:
        with Session(self.engine) as session:
            entry = session.get(NotificationLogEntry, key)
            return entry.sent_at if entry else None

    def record_sent(self, key: str, sent_at: datetime):
        with Session(self.engine) as session:
            entry = session.get(NotificationLogEntry, key)
            if entry is None:
                entry = NotificationLogEntry(key=key, sent_at=sent_at)
            else:
                entry.sent_at = sent_at
            session.add(entry)
            session.commit()


# --- Scheduler ---

class NotificationScheduler:
    def __init__(self, outbox: NotificationOutbox, cooldown: timedelta | None = None):
        self.outbox = outbox
        self.cooldown = (
            cooldown if cooldown is not None else timedelta(hours=settings.NOTIFICATION_COOLDOWN_HOURS)
        )

    def schedule(self,
                 alert_type: AlertType,
                 service_name: str,
                 password_id: str,
                 days_until_expiry: int | None = None) -> str:
        if alert_type == AlertType.BREACH:
            title = "Security Alert"
            body = f"Your password for {service_name} may have been compromised in a data breach"
        elif alert_type == AlertType.WEAK_PASSWORD:
            title = "Weak Password Detected"
            body = f"Your password for {service_name} is weak and should be updated"
        elif alert_type == AlertType.EXPIRING:
            title = "Password Expiry Reminder"
            body = f"Your password for {service_name} will expire in {days_until_expiry} days"
        else:
            raise ValueError(f"No notification for alert type {alert_type.value}")

        return self.outbox.add(
            notification_id=str(uuid4()),
            kind=alert_type.value,
            title=title,
            body=body,
            data={
                "password_id": password_id,
                "service_name": service_name,
                "days_until_expiry": days_until_expiry,
            },
            password_id=password_id,
        )

    @staticmethod
    def _allowed(alert: SecurityAlert, preferences: NotificationPreferences) -> bool:
        if alert.type == AlertType.BREACH:
            return preferences.breach_alerts
        if alert.type == AlertType.WEAK_PASSWORD:
            return preferences.weak_password_alerts
        if alert.type == AlertType.EXPIRING:
            return preferences.password_expiry and alert.days_until_expiry is not None
        return False

    def schedule_security_alerts(self,
                                 alerts: Iterable[SecurityAlert],
                                 preferences: NotificationPreferences,
                                 now: datetime | None = None) -> list[str]:
        """Queues one notification per eligible alert unless the same one went out inside the cooldown."""
        now = now or datetime.now()
        if not preferences.security_alerts:
            return []

        scheduled = []
        for alert in alerts:
            if not self._allowed(alert, preferences):
                continue

            key = f"{alert.type.value}:{alert.password_id}"
            last = self.outbox.last_sent(key)
            if last is not None and now - last < self.cooldown:
                logger.debug(f"Skipping {key}, already sent at {last}")
                continue

            notification_id = self.schedule(
                alert.type, alert.service_name, alert.password_id, alert.days_until_expiry
            )
            self.outbox.record_sent(key, now)
            scheduled.append(notification_id)
        return scheduled

    def schedule_expiry_reminders(self,
                                  records: Iterable[PasswordRecord],
                                  expiry_settings: ExpirySettings,
                                  now: datetime | None = None) -> list[str]:
        if not expiry_settings.enabled:
            return []
        now = now or datetime.now()

        scheduled = []
        for record in records:
            for days_before, remind_at in reminder_schedule(record, expiry_settings.reminder_days, now):
                notification_id = f"expiry-{record.id}-{days_before}"
                if self.outbox.exists(notification_id):
                    continue
                plural = "s" if days_before > 1 else ""
                self.outbox.add(
                    notification_id=notification_id,
                    kind="password_expiry",
                    title="Password Expiry Reminder",
                    body=f"Your password for {record.service} will expire in {days_before} day{plural}",
                    data={
                        "password_id": record.id,
                        "service_name": record.service,
                        "days_until_expiry": days_before,
                        "expiry_date": record.expiry_date,
                    },
                    password_id=record.id,
                    deliver_at=remind_at,
                )
                scheduled.append(notification_id)
        return scheduled

    def cancel_expiry_reminders(self, password_id: str) -> int:
        return self.outbox.cancel_for_password(password_id, "password_expiry")

    def daily_weak_password_check(self,
                                  records: Iterable[PasswordRecord],
                                  digest: DailyDigestSettings,
                                  strength: PasswordStrengthAnalyzer | None = None,
                                  now: datetime | None = None) -> str | None:
        """At most one digest per day, only close to the configured time of day."""
        if not digest.weak_password_daily_enabled:
            return None
        now = now or datetime.now()

        hours, minutes = (int(part) for part in digest.weak_password_daily_time.split(":"))
        today = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
        # The closest occurrence may be yesterday's or tomorrow's around midnight
        target = min((today + timedelta(days=d) for d in (-1, 0, 1)), key=lambda t: abs(now - t))
        if abs(now - target) > DAILY_WINDOW:
            return None

        last = self.outbox.last_sent(DAILY_WEAK_CHECK_KEY)
        if last is not None and abs(last - target) <= DAILY_WINDOW:
            return None

        strength = strength or PasswordStrengthAnalyzer()
        weak = [r for r in records if strength.score(r.secret) <= WEAK_MAX_SCORE]

        notification_id = None
        if weak:
            plural = "s" if len(weak) > 1 else ""
            notification_id = self.outbox.add(
                notification_id=f"weak-password-daily-{target:%Y%m%d}",
                kind="weak_password_daily",
                title="Weak Passwords Detected",
                body=f"You have {len(weak)} weak password{plural} that should be updated for better security",
                data={
                    "weak_password_count": len(weak),
                    "weak_passwords": [{"id": r.id, "service_name": r.service} for r in weak],
                },
            )

        self.outbox.record_sent(DAILY_WEAK_CHECK_KEY, now)
        return notification_id

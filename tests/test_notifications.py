from datetime import datetime, timedelta
import pytest

from vaultaudit.client.database import make_engine
from vaultaudit.client.notifications import (
    NotificationLogEntry,
    NotificationOutbox,
    NotificationScheduler,
    OutboxNotification,
)
from vaultaudit.core.models import (
    AlertType,
    DailyDigestSettings,
    ExpirySettings,
    NotificationPreferences,
    SecurityAlert,
    Severity,
)
from conftest import NOW, STRONG, WEAK


@pytest.fixture
def outbox(tmp_path):
    return NotificationOutbox(engine=make_engine(f"sqlite:///{tmp_path / 'outbox.db'}"))


@pytest.fixture
def scheduler(outbox):
    return NotificationScheduler(outbox, cooldown=timedelta(hours=24))


def _alert(alert_type, password_id="rec-1", days=None):
    return SecurityAlert(
        id=f"{alert_type.value}-{password_id}",
        type=alert_type,
        severity=Severity.HIGH,
        title="t",
        message="m",
        service_name="Example",
        password_id=password_id,
        days_until_expiry=days,
    )


def test_schedule_titles(scheduler, outbox):
    scheduler.schedule(AlertType.BREACH, "Example", "rec-1")
    scheduler.schedule(AlertType.WEAK_PASSWORD, "Example", "rec-2")
    scheduler.schedule(AlertType.EXPIRING, "Example", "rec-3", days_until_expiry=5)

    by_kind = {n.kind: n for n in outbox.pending(NOW)}
    assert by_kind["breach"].title == "Security Alert"
    assert by_kind["weak_password"].title == "Weak Password Detected"
    assert by_kind["expiring"].body == "Your password for Example will expire in 5 days"

    with pytest.raises(ValueError):
        scheduler.schedule(AlertType.REUSED_PASSWORD, "Example", "rec-4")


def test_security_alerts_respect_preferences(scheduler, outbox):
    alerts = [
        _alert(AlertType.BREACH),
        _alert(AlertType.WEAK_PASSWORD),
        _alert(AlertType.REUSED_PASSWORD),
        _alert(AlertType.EXPIRING, days=3),
    ]
    prefs = NotificationPreferences(weak_password_alerts=False)
    scheduled = scheduler.schedule_security_alerts(alerts, prefs, now=NOW)

    assert len(scheduled) == 2
    assert sorted(n.kind for n in outbox.pending(NOW)) == ["breach", "expiring"]


def test_master_switch_off(scheduler, outbox):
    prefs = NotificationPreferences(security_alerts=False)
    assert scheduler.schedule_security_alerts([_alert(AlertType.BREACH)], prefs, now=NOW) == []
    assert outbox.pending(NOW) == []


def test_cooldown(scheduler):
    prefs = NotificationPreferences()
    alerts = [_alert(AlertType.BREACH)]

    assert len(scheduler.schedule_security_alerts(alerts, prefs, now=NOW)) == 1
    assert scheduler.schedule_security_alerts(alerts, prefs, now=NOW + timedelta(hours=2)) == []
    assert len(scheduler.schedule_security_alerts(alerts, prefs, now=NOW + timedelta(hours=25))) == 1


def test_expiry_reminders(scheduler, outbox, make_record):
    record = make_record(expiry_in_days=10)
    scheduled = scheduler.schedule_expiry_reminders([record, make_record()], ExpirySettings(), now=NOW)

    assert scheduled == [f"expiry-{record.id}-7", f"expiry-{record.id}-1"]
    # Running again does not duplicate
    assert scheduler.schedule_expiry_reminders([record], ExpirySettings(), now=NOW) == []
    # Not due yet
    assert outbox.pending(NOW) == []
    due = outbox.pending(record.expiry_date - timedelta(days=1))
    assert [n.body for n in due] == [
        "Your password for Example will expire in 7 days",
        "Your password for Example will expire in 1 day",
    ]

    assert scheduler.cancel_expiry_reminders(record.id) == 2
    assert outbox.pending(record.expiry_date) == []


def test_expiry_reminders_disabled(scheduler, make_record):
    settings = ExpirySettings(enabled=False)
    assert scheduler.schedule_expiry_reminders([make_record(expiry_in_days=10)], settings, now=NOW) == []


def test_mark_delivered(scheduler, outbox):
    notification_id = scheduler.schedule(AlertType.BREACH, "Example", "rec-1")
    outbox.mark_delivered([notification_id])
    assert outbox.pending(NOW) == []
    assert outbox.cancel(notification_id) is True
    assert outbox.cancel(notification_id) is False


def test_daily_weak_password_digest(scheduler, outbox, make_record):
    records = [make_record(secret=WEAK, service="Old"), make_record(secret=STRONG)]
    digest = DailyDigestSettings(weak_password_daily_time="12:10")

    notification_id = scheduler.daily_weak_password_check(records, digest, now=NOW)
    assert notification_id == "weak-password-daily-20250601"
    pending = outbox.pending(NOW)
    assert pending[0].body == "You have 1 weak password that should be updated for better security"

    # Once per day
    assert scheduler.daily_weak_password_check(records, digest, now=NOW + timedelta(minutes=5)) is None
    assert len(outbox.pending(NOW)) == 1


def test_daily_digest_outside_window(scheduler, make_record):
    digest = DailyDigestSettings(weak_password_daily_time="09:00")
    assert scheduler.daily_weak_password_check([make_record(secret=WEAK)], digest, now=NOW) is None


def test_daily_digest_disabled(scheduler, make_record):
    digest = DailyDigestSettings(weak_password_daily_enabled=False, weak_password_daily_time="12:00")
    assert scheduler.daily_weak_password_check([make_record(secret=WEAK)], digest, now=NOW) is None


def test_outbox_timestamps_are_naive_columns():
    assert OutboxNotification.__table__.c.deliver_at.type.timezone is False
    assert NotificationLogEntry.__table__.c.sent_at.type.timezone is False


def test_zero_cooldown_allows_repeats(outbox):
    scheduler = NotificationScheduler(outbox, cooldown=timedelta(0))
    prefs = NotificationPreferences()
    alerts = [_alert(AlertType.BREACH)]

    assert len(scheduler.schedule_security_alerts(alerts, prefs, now=NOW)) == 1
    assert len(scheduler.schedule_security_alerts(alerts, prefs, now=NOW + timedelta(seconds=1))) == 1


def test_daily_digest_across_midnight(scheduler, outbox, make_record):
    digest = DailyDigestSettings(weak_password_daily_time="23:50")
    after_midnight = datetime(2025, 6, 2, 0, 10)
    records = [make_record(secret=WEAK)]

    notification_id = scheduler.daily_weak_password_check(records, digest, now=after_midnight)
    assert notification_id == "weak-password-daily-20250601"
    # Same occurrence, already sent
    assert scheduler.daily_weak_password_check(records, digest, now=after_midnight + timedelta(minutes=5)) is None
    # Next evening is a new occurrence
    next_id = scheduler.daily_weak_password_check(records, digest, now=datetime(2025, 6, 2, 23, 45))
    assert next_id == "weak-password-daily-20250602"

import logging
import math
import threading
from collections import Counter
from datetime import datetime
from typing import Sequence

from .breach import BreachCheckError, BreachChecker
from .health import PasswordHealthAnalyzer
from .models import (
    AlertAction,
    AlertType,
    NotificationPreferences,
    PasswordHealth,
    PasswordRecord,
    RiskLevel,
    SecurityAlert,
    SecurityDashboardData,
    SecurityMetrics,
    Severity,
    as_local_naive,
)

logger = logging.getLogger(__name__)

# Penalty weights per issue ratio
WEAK_WEIGHT = 30
REUSED_WEIGHT = 25
OLD_WEIGHT = 20
BREACHED_WEIGHT = 40
EXPIRING_WEIGHT = 10

SMALL_COLLECTION = 5
URGENT_EXPIRY_DAYS = 7


def count_reused(secrets: Sequence[str]) -> int:
    """Every record in a group sharing one secret counts, so A,A,A,B gives 3."""
    return sum(n for n in Counter(secrets).values() if n > 1)


def calculate_security_score(metrics: SecurityMetrics) -> int:
    total = metrics.total_passwords
    if total == 0:
        return 0

    score = 100.0
    score -= metrics.weak_passwords / total * WEAK_WEIGHT
    score -= metrics.reused_passwords / total * REUSED_WEIGHT
    score -= metrics.old_passwords / total * OLD_WEIGHT
    score -= metrics.breached_passwords / total * BREACHED_WEIGHT
    score -= metrics.expiring_passwords / total * EXPIRING_WEIGHT

    # Half-up rounding, not Python's banker's rounding
    return max(0, min(100, math.floor(score + 0.5)))


def calculate_risk_level(metrics: SecurityMetrics) -> RiskLevel:
    total = metrics.total_passwords
    if metrics.breached_passwords > 0:
        return RiskLevel.CRITICAL
    if metrics.weak_passwords > total * 0.3:
        return RiskLevel.HIGH
    if metrics.reused_passwords > 0 or metrics.old_passwords > total * 0.5:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def sort_alerts(alerts: list[SecurityAlert]) -> list[SecurityAlert]:
    """Most severe first; equal severities keep their order."""
    return sorted(alerts, key=lambda alert: -alert.severity.rank)


def build_alerts(health: PasswordHealth, now: datetime) -> list[SecurityAlert]:
    alerts = []

    if health.is_breached:
        alerts.append(SecurityAlert(
            id=f"breach-{health.id}",
            type=AlertType.BREACH,
            severity=Severity.CRITICAL,
            title="Password Compromised",
            message=f"Your password for {health.service} has been found in a data breach",
            service_name=health.service,
            password_id=health.id,
            created_at=now,
            actions=[
                AlertAction(label="Change Password", action="change_password", is_primary=True),
                AlertAction(label="Learn More", action="learn_more"),
            ],
        ))

    if health.is_weak:
        alerts.append(SecurityAlert(
            id=f"weak-{health.id}",
            type=AlertType.WEAK_PASSWORD,
            severity=Severity.HIGH,
            title="Weak Password",
            message=f"Your password for {health.service} is weak and easily guessable",
            service_name=health.service,
            password_id=health.id,
            created_at=now,
            actions=[
                AlertAction(label="Strengthen Password", action="strengthen_password", is_primary=True),
                AlertAction(label="Generate New", action="generate_password"),
            ],
        ))

    if health.is_expiring and health.days_until_expiry is not None:
        alerts.append(SecurityAlert(
            id=f"expiring-{health.id}",
            type=AlertType.EXPIRING,
            severity=Severity.HIGH if health.days_until_expiry <= URGENT_EXPIRY_DAYS else Severity.MEDIUM,
            title="Password Expiring Soon",
            message=f"Your password for {health.service} expires in {health.days_until_expiry} days",
            service_name=health.service,
            password_id=health.id,
            created_at=now,
            actions=[
                AlertAction(label="Update Password", action="update_password", is_primary=True),
                AlertAction(label="Extend Expiry", action="extend_expiry"),
            ],
            days_until_expiry=health.days_until_expiry,
        ))

    if health.is_reused:
        alerts.append(SecurityAlert(
            id=f"reused-{health.id}",
            type=AlertType.REUSED_PASSWORD,
            severity=Severity.MEDIUM,
            title="Password Reused",
            message=f"Your password for {health.service} is used for multiple accounts",
            service_name=health.service,
            password_id=health.id,
            created_at=now,
            actions=[
                AlertAction(label="Create Unique Password", action="create_unique", is_primary=True),
            ],
        ))

    return alerts


def build_recommendations(metrics: SecurityMetrics) -> list[str]:
    recommendations = []

    if metrics.weak_passwords > 0:
        recommendations.append(f"Update {metrics.weak_passwords} weak password(s) to improve security")
    if metrics.reused_passwords > 0:
        recommendations.append(
            f"{metrics.reused_passwords} password(s) are reused - create unique passwords for each account"
        )
    if metrics.old_passwords > 0:
        recommendations.append(
            f"{metrics.old_passwords} password(s) are over 3 months old - consider updating them"
        )
    if metrics.breached_passwords > 0:
        recommendations.append(
            f"{metrics.breached_passwords} password(s) have been found in data breaches - change them immediately"
        )
    if metrics.expiring_passwords > 0:
        recommendations.append(f"{metrics.expiring_passwords} password(s) are expiring soon - schedule updates")

    if not recommendations:
        recommendations.append("Your password security looks good! Keep up the good work.")

    if metrics.total_passwords < SMALL_COLLECTION:
        recommendations.append("Consider using a password manager for all your accounts")

    recommendations.append("Enable biometric authentication for quick and secure access")
    recommendations.append("Rotate your passwords every 3-6 months")
    return recommendations


class SecurityDashboardService:
    def __init__(self,
                 health: PasswordHealthAnalyzer | None = None,
                 breach_checker: BreachChecker | None = None):
        self.breach_checker = breach_checker
        self.health = health or PasswordHealthAnalyzer(breach_checker=breach_checker)

    def generate(self,
                 records: Sequence[PasswordRecord],
                 now: datetime | None = None,
                 cancel: threading.Event | None = None) -> SecurityDashboardData:
        now = as_local_naive(now) if now is not None else datetime.now()
        secrets = [r.secret for r in records]
        breached = self._breach_statuses(secrets, cancel)

        password_health = [
            self.health.analyze(record, secrets, now=now, is_breached=breached.get(record.secret, False))
            for record in records
        ]

        metrics = SecurityMetrics(
            total_passwords=len(records),
            weak_passwords=sum(h.is_weak for h in password_health),
            reused_passwords=count_reused(secrets),
            old_passwords=sum(h.is_old for h in password_health),
            breached_passwords=sum(h.is_breached for h in password_health),
            expiring_passwords=sum(h.is_expiring for h in password_health),
        )
        metrics.security_score = calculate_security_score(metrics)

        alerts = []
        for health in password_health:
            alerts.extend(build_alerts(health, now))

        return SecurityDashboardData(
            metrics=metrics,
            password_health=password_health,
            recommendations=build_recommendations(metrics),
            alerts=sort_alerts(alerts),
            risk_level=calculate_risk_level(metrics),
        )

    def _breach_statuses(self, secrets: list[str], cancel: threading.Event | None) -> dict[str, bool]:
        if self.breach_checker is None or not secrets:
            return {}
        try:
            results = self.breach_checker.check_many(dict.fromkeys(secrets), cancel=cancel)
        except BreachCheckError as e:
            logger.warning(f"Breach data unavailable for this dashboard: {e}")
            return {}
        return {secret: result.is_breached for secret, result in results.items()}

    def generate_and_notify(self,
                            records: Sequence[PasswordRecord],
                            scheduler,
                            preferences: NotificationPreferences,
                            now: datetime | None = None) -> SecurityDashboardData:
        """Generate the dashboard, then queue notifications for its alerts without waiting on the outcome."""
        now = as_local_naive(now) if now is not None else datetime.now()
        dashboard = self.generate(records, now=now)
        try:
            scheduler.schedule_security_alerts(dashboard.alerts, preferences, now=now)
        except Exception:
            logger.exception("Scheduling security notifications failed")
        return dashboard

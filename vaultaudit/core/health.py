import logging
from datetime import datetime, timedelta
from typing import Sequence

from ..config import settings
from .breach import BreachCheckError, BreachChecker
from .expiry import days_until
from .models import HealthStrength, PasswordHealth, PasswordRecord, as_local_naive
from .strength import PasswordStrengthAnalyzer, indicator_for

logger = logging.getLogger(__name__)

WEAK_BELOW_SCORE = 3


class PasswordHealthAnalyzer:
    """Health report for one record: strength, reuse, age, expiry and breach status."""

    def __init__(self,
                 strength: PasswordStrengthAnalyzer | None = None,
                 breach_checker: BreachChecker | None = None,
                 old_after_days: int | None = None,
                 expiry_warning_days: int | None = None,
                 track_expired: bool | None = None):
        self.strength = strength or PasswordStrengthAnalyzer()
        self.breach_checker = breach_checker
        self.old_after = timedelta(
            days=old_after_days if old_after_days is not None else settings.OLD_PASSWORD_DAYS
        )
        self.expiry_warning_days = (
            expiry_warning_days if expiry_warning_days is not None else settings.EXPIRY_WARNING_DAYS
        )
        self.track_expired = settings.TRACK_EXPIRED_PASSWORDS if track_expired is None else track_expired

    def analyze(self,
                record: PasswordRecord,
                all_secrets: Sequence[str],
                now: datetime | None = None,
                is_breached: bool | None = None) -> PasswordHealth:
        """
        `all_secrets` is every secret of the owner's collection, this record's included.
        Pass `is_breached` when the breach status was looked up in bulk already.
        """
        now = as_local_naive(now) if now is not None else datetime.now()
        indicator = indicator_for(self.strength.score(record.secret, [record.service, record.account]))

        age = now - record.created_at
        days_since_created = age.days
        days_left = days_until(record.expiry_date, now) if record.expiry_date is not None else None

        is_weak = indicator.score < WEAK_BELOW_SCORE
        is_reused = list(all_secrets).count(record.secret) > 1
        is_old = age > self.old_after
        # Past-due records count as expiring too
        is_expiring = days_left is not None and days_left <= self.expiry_warning_days
        if is_breached is None:
            is_breached = self._lookup_breach(record)

        return PasswordHealth(
            id=record.id,
            service=record.service,
            strength=HealthStrength(score=indicator.score, level=indicator.level, color=indicator.color),
            is_weak=is_weak,
            is_reused=is_reused,
            is_old=is_old,
            is_breached=is_breached,
            is_expiring=is_expiring,
            days_since_created=days_since_created,
            days_until_expiry=days_left,
            recommendations=self.recommendations(
                is_breached=is_breached,
                is_weak=is_weak,
                is_reused=is_reused,
                is_old=is_old,
                is_expiring=is_expiring,
                days_since_created=days_since_created,
                days_until_expiry=days_left,
            ),
            is_expired=(days_left is not None and days_left <= 0) if self.track_expired else None,
        )

    def _lookup_breach(self, record: PasswordRecord) -> bool:
        if self.breach_checker is None:
            return False
        try:
            return self.breach_checker.check_password(record.secret).is_breached
        except BreachCheckError as e:
            logger.warning(f"Breach status unknown for record {record.id}, assuming not breached: {e}")
            return False

    @staticmethod
    def recommendations(*,
                        is_breached: bool,
                        is_weak: bool,
                        is_reused: bool,
                        is_old: bool,
                        is_expiring: bool,
                        days_since_created: int,
                        days_until_expiry: int | None) -> list[str]:
        recommendations = []
        if is_breached:
            recommendations.append("Password found in data breach - change immediately")
        if is_weak:
            recommendations.append("Password is weak - use longer, more complex password")
        if is_reused:
            recommendations.append("Password is reused - create a unique password")
        if is_old:
            recommendations.append(f"Password is {days_since_created} days old - consider updating")
        if is_expiring:
            recommendations.append(f"Password expires in {days_until_expiry} days")

        if not recommendations:
            recommendations.append("Password appears secure")
        return recommendations

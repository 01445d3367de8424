import pytest

from vaultaudit.core.breach import BreachCheckError
from vaultaudit.core.health import PasswordHealthAnalyzer
from conftest import NOW, STRONG, STRONG_2, WEAK


@pytest.fixture
def analyzer():
    return PasswordHealthAnalyzer(old_after_days=90, expiry_warning_days=14, track_expired=False)


def test_secure_record(analyzer, make_record):
    record = make_record()
    health = analyzer.analyze(record, [STRONG, STRONG_2], now=NOW)

    assert health.id == record.id
    assert health.is_weak is False
    assert health.is_reused is False
    assert health.is_old is False
    assert health.is_breached is False
    assert health.is_expiring is False
    assert health.days_since_created == 1
    assert health.days_until_expiry is None
    assert health.is_expired is None
    assert health.recommendations == ["Password appears secure"]


def test_weak_reused_old_record(analyzer, make_record):
    record = make_record(secret=WEAK, age_days=120)
    health = analyzer.analyze(record, [WEAK, WEAK, STRONG], now=NOW)

    assert health.is_weak is True
    assert health.strength.score == 0
    assert health.is_reused is True
    assert health.is_old is True
    assert health.recommendations == [
        "Password is weak - use longer, more complex password",
        "Password is reused - create a unique password",
        "Password is 120 days old - consider updating",
    ]


def test_exactly_old_threshold_is_not_old(analyzer, make_record):
    health = analyzer.analyze(make_record(age_days=90), [STRONG], now=NOW)
    assert health.is_old is False


def test_expiring_record(analyzer, make_record):
    soon = analyzer.analyze(make_record(expiry_in_days=10), [STRONG], now=NOW)
    assert soon.days_until_expiry == 10
    assert soon.is_expiring is True
    assert "Password expires in 10 days" in soon.recommendations

    later = analyzer.analyze(make_record(expiry_in_days=20), [STRONG], now=NOW)
    assert later.is_expiring is False


def test_past_due_counts_as_expiring(make_record):
    tracking = PasswordHealthAnalyzer(track_expired=True)
    health = tracking.analyze(make_record(expiry_in_days=-2), [STRONG], now=NOW)
    assert health.is_expiring is True
    assert health.is_expired is True
    assert health.days_until_expiry == -2


def test_breached_comes_first(analyzer, make_record):
    health = analyzer.analyze(make_record(), [STRONG], now=NOW, is_breached=True)
    assert health.is_breached is True
    assert health.recommendations[0] == "Password found in data breach - change immediately"


def test_service_name_as_password_is_weak(analyzer, make_record):
    record = make_record(secret="acmecorporation", service="acmecorporation")
    health = analyzer.analyze(record, [record.secret], now=NOW)
    assert health.is_weak is True


def test_looks_up_breach_when_not_given(breach_checker, fake_session, make_record):
    fake_session.breach(STRONG, 2)
    analyzer = PasswordHealthAnalyzer(breach_checker=breach_checker)
    health = analyzer.analyze(make_record(), [STRONG], now=NOW)
    assert health.is_breached is True


def test_breach_lookup_failure_reads_as_clean(make_record):
    class BrokenChecker:
        def check_password(self, password):
            raise BreachCheckError("offline")

    analyzer = PasswordHealthAnalyzer(breach_checker=BrokenChecker())
    health = analyzer.analyze(make_record(), [STRONG], now=NOW)
    assert health.is_breached is False


def test_zero_day_threshold_is_honoured(make_record):
    analyzer = PasswordHealthAnalyzer(old_after_days=0, expiry_warning_days=0, track_expired=False)
    health = analyzer.analyze(make_record(age_days=1, expiry_in_days=3), [STRONG], now=NOW)
    assert health.is_old is True
    assert health.is_expiring is False

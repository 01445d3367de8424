from datetime import datetime, timedelta
import hashlib
import pytest
import requests

from vaultaudit.core.breach import BreachChecker
from vaultaudit.core.models import PasswordRecord

NOW = datetime(2025, 6, 1, 12, 0, 0)

WEAK = "password"
STRONG = "vG7#qLp2$Xz9!mR4wK"
STRONG_2 = "Tq8@wN3&bY6^cJ1*hD"
STRONG_3 = "pK4!sZ7%fM2?xW9(eL"


def range_line(password: str, count: int) -> tuple[str, str]:
    digest = hashlib.sha1(password.encode("utf-8")).hexdigest().upper()
    return digest[:5], f"{digest[5:]}:{count}"


class FakeResponse:
    def __init__(self, status_code: int = 200, text: str = "", json_data=None):
        self.status_code = status_code
        self.text = text
        self._json = json_data

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """Stands in for requests.Session; routes are matched on URL suffix."""

    def __init__(self):
        self.routes: dict[str, object] = {}
        self.calls: list[dict] = []

    def add(self, url_suffix: str, response):
        self.routes[url_suffix] = response

    def breach(self, password: str, count: int, padding: str = "0A1B2C3D4E5F60718293A4B5C6D7E8F9012:0"):
        prefix, line = range_line(password, count)
        self.add(f"/range/{prefix}", FakeResponse(200, f"{padding}\r\n{line}\r\n"))

    def fail(self, password: str, error=None):
        prefix, _ = range_line(password, 0)
        self.add(f"/range/{prefix}", error or requests.ConnectionError("network down"))

    def get(self, url, headers=None, params=None, timeout=None):
        self.calls.append({"url": url, "headers": headers or {}, "params": params, "timeout": timeout})
        for suffix, response in self.routes.items():
            if url.endswith(suffix):
                if isinstance(response, Exception):
                    raise response
                return response
        # Unknown prefixes: a listing without our suffix
        return FakeResponse(200, "FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFF:12\r\n")


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def breach_checker(fake_session, sleeps):
    return BreachChecker(
        session=fake_session,
        api_key="test-key",
        range_url="https://api.pwnedpasswords.com/range",
        api_url="https://haveibeenpwned.com/api/v3",
        user_agent="vaultaudit-tests",
        request_delay=0.2,
        sleep=sleeps.append,
        clock=lambda: 0.0,
    )


@pytest.fixture
def make_record():
    counter = iter(range(1, 10_000))

    def _make(secret: str = STRONG,
              service: str = "Example",
              account: str = "someone@example.org",
              age_days: int = 1,
              expiry_in_days: float | None = None,
              **kwargs) -> PasswordRecord:
        created = NOW - timedelta(days=age_days)
        expiry = NOW + timedelta(days=expiry_in_days) if expiry_in_days is not None else None
        return PasswordRecord(
            id=kwargs.pop("id", f"rec-{next(counter)}"),
            owner_id=kwargs.pop("owner_id", "owner-1"),
            service=service,
            account=account,
            secret=secret,
            created_at=created,
            updated_at=created,
            expiry_date=expiry,
            **kwargs,
        )

    return _make

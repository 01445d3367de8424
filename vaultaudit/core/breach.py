"""
Breach lookups against Have I Been Pwned.

Passwords are checked with the k-anonymity range API: only the first five hex
characters of the SHA-1 hash leave the device. E-mail lookups use the
breached-account API, which needs the literal address.
"""
import hashlib
import logging
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, Iterable
from urllib.parse import quote
import requests
from pydantic import ValidationError

from ..config import settings
from .models import (
    BreachRecord,
    BreachRiskAssessment,
    EmailBreachResult,
    PasswordBreachResult,
    RiskLevel,
    ServiceBreachReport,
)

logger = logging.getLogger(__name__)

HIGH_IMPACT_PWN_COUNT = 1_000_000

SERVICE_DOMAINS = {
    "gmail": "gmail.com",
    "google": "google.com",
    "facebook": "facebook.com",
    "instagram": "instagram.com",
    "twitter": "twitter.com",
    "linkedin": "linkedin.com",
    "microsoft": "microsoft.com",
    "apple": "apple.com",
    "amazon": "amazon.com",
    "netflix": "netflix.com",
    "spotify": "spotify.com",
    "github": "github.com",
    "dropbox": "dropbox.com",
    "yahoo": "yahoo.com",
    "ebay": "ebay.com",
    "paypal": "paypal.com",
}


class BreachCheckError(Exception):
    """The breach service could not be reached or answered with something unusable."""


def sha1_hex(password: str) -> str:
    # Lone surrogates hash too, rather than failing the lookup
    return hashlib.sha1(password.encode("utf-8", errors="surrogatepass")).hexdigest().upper()


def split_hash(password: str) -> tuple[str, str]:
    digest = sha1_hex(password)
    return digest[:5], digest[5:]


def parse_range_response(body: str, suffix: str) -> int:
    """Count for `suffix` in a `SUFFIX:COUNT` listing, 0 when absent."""
    for line in body.splitlines():
        line = line.strip()
        if not line:
            continue
        candidate, sep, count = line.partition(":")
        if not sep:
            raise BreachCheckError(f"Malformed range line: {line[:40]!r}")
        if candidate.upper() == suffix:
            try:
                return int(count.strip())
            except ValueError as exc:
                raise BreachCheckError(f"Malformed breach count: {count!r}") from exc
    return 0


def extract_domain(service_name: str) -> str:
    lower_service = service_name.lower().strip()
    for service, domain in SERVICE_DOMAINS.items():
        if service in lower_service:
            return domain

    if "." in lower_service:
        without_scheme = lower_service.split("://", 1)[-1]
        return without_scheme.split("/", 1)[0]

    return f"{lower_service}.com"


class BreachChecker:
    def __init__(self,
                 session: requests.Session | None = None,
                 api_key: str | None = None,
                 range_url: str | None = None,
                 api_url: str | None = None,
                 user_agent: str | None = None,
                 timeout: float | None = None,
                 request_delay: float | None = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.session = session or requests.Session()
        self.api_key = api_key if api_key is not None else settings.HIBP_API_KEY
        self.range_url = (range_url or settings.PWNED_PASSWORDS_API_URL).rstrip("/")
        self.api_url = (api_url or settings.HIBP_API_URL).rstrip("/")
        self.user_agent = user_agent or settings.USER_AGENT
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS
        self.request_delay = (
            request_delay if request_delay is not None else settings.BREACH_REQUEST_DELAY_SECONDS
        )
        self._sleep = sleep
        self._clock = clock

    def _headers(self, with_key: bool = False) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent}
        if with_key and self.api_key:
            headers["hibp-api-key"] = self.api_key
        return headers

    def _get(self, url: str, **kwargs) -> requests.Response:
        try:
            return self.session.get(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise BreachCheckError(f"Request to breach service failed: {exc}") from exc

    # --- Passwords ---

    def check_password(self, password: str) -> PasswordBreachResult:
        prefix, suffix = split_hash(password)
        resp = self._get(f"{self.range_url}/{prefix}", headers=self._headers())

        if resp.status_code != 200:
            raise BreachCheckError(f"Range lookup for {prefix} returned {resp.status_code}")

        count = parse_range_response(resp.text, suffix)
        logger.debug("Range lookup %s: %d matching hashes", prefix, count)
        # Padded responses list decoy suffixes with a count of 0
        return PasswordBreachResult(is_breached=count > 0, breach_count=count)

    def check_many(self,
                   passwords: Iterable[str],
                   cancel: threading.Event | None = None) -> dict[str, PasswordBreachResult]:
        """
        Sequential batch check with a pause between requests.
        A failing entry reads as not breached; the batch carries on.
        """
        results: dict[str, PasswordBreachResult] = {}
        last_request: float | None = None

        for password in passwords:
            if password in results:
                continue
            if cancel is not None and cancel.is_set():
                results[password] = PasswordBreachResult()
                continue

            if last_request is not None:
                wait = self.request_delay - (self._clock() - last_request)
                if wait > 0:
                    self._sleep(wait)
            last_request = self._clock()

            try:
                results[password] = self.check_password(password)
            except BreachCheckError as e:
                logger.warning(f"Breach check failed, treating as not breached: {e}")
                results[password] = PasswordBreachResult()

        return results

    # --- Accounts ---

    def check_email(self, email: str) -> EmailBreachResult:
        resp = self._get(
            f"{self.api_url}/breachedaccount/{quote(email, safe='')}",
            headers=self._headers(with_key=True),
            params={"truncateResponse": "false"},
        )

        if resp.status_code == 404:
            return EmailBreachResult()
        if not 200 <= resp.status_code < 300:
            raise BreachCheckError(f"Breached-account lookup returned {resp.status_code}")

        breaches = self._parse_breaches(resp)
        return EmailBreachResult(
            is_breached=len(breaches) > 0,
            breach_count=len(breaches),
            breaches=breaches,
        )

    def get_domain_breaches(self, domain: str) -> list[BreachRecord]:
        return self._list_breaches({"domain": domain})

    def get_all_breaches(self) -> list[BreachRecord]:
        return self._list_breaches(None)

    def _list_breaches(self, params: dict | None) -> list[BreachRecord]:
        resp = self._get(f"{self.api_url}/breaches", headers=self._headers(with_key=True), params=params)
        if resp.status_code != 200:
            raise BreachCheckError(f"Breach catalogue lookup returned {resp.status_code}")
        return self._parse_breaches(resp)

    @staticmethod
    def _parse_breaches(resp: requests.Response) -> list[BreachRecord]:
        try:
            payload = resp.json()
            return [BreachRecord.model_validate(item) for item in payload]
        except (ValueError, TypeError, ValidationError) as exc:
            raise BreachCheckError(f"Unreadable breach payload: {exc}") from exc

    def check_service_breach(self, service_name: str, now: datetime | None = None) -> ServiceBreachReport:
        now = now or datetime.now()
        domain = extract_domain(service_name)
        try:
            breaches = self.get_domain_breaches(domain)
        except BreachCheckError as e:
            logger.warning(f"Service breach lookup for {domain} failed: {e}")
            return ServiceBreachReport()

        recommendations = []
        if breaches:
            recommendations.append(f"{service_name} has been involved in {len(breaches)} data breach(es)")
            recommendations.append("Consider changing your password for this service")
            if any(_is_recent(b, now) for b in breaches):
                recommendations.append("This service has had recent breaches - immediate action recommended")

        return ServiceBreachReport(
            has_breaches=len(breaches) > 0,
            breaches=breaches,
            recommendations=recommendations,
        )


def _is_recent(breach: BreachRecord, now: datetime) -> bool:
    try:
        breach_date = datetime.strptime(breach.breach_date[:10], "%Y-%m-%d")
    except ValueError:
        return False
    return breach_date > now - timedelta(days=365)


def assess_breach_risk(breaches: list[BreachRecord], now: datetime | None = None) -> BreachRiskAssessment:
    now = now or datetime.now()
    recent = [b for b in breaches if _is_recent(b, now)]
    high_impact = [b for b in breaches if b.pwn_count > HIGH_IMPACT_PWN_COUNT and b.is_verified]
    sensitive = [b for b in breaches if b.is_sensitive]

    score = len(breaches) * 5 + len(recent) * 15 + len(high_impact) * 25 + len(sensitive) * 20

    if score >= 100:
        risk_level = RiskLevel.CRITICAL
    elif score >= 60:
        risk_level = RiskLevel.HIGH
    elif score >= 30:
        risk_level = RiskLevel.MEDIUM
    else:
        risk_level = RiskLevel.LOW

    recommendations = []
    if breaches:
        recommendations.append("Change all passwords for breached accounts immediately")
    if recent:
        recommendations.append("Monitor accounts from recent breaches closely")
    if high_impact:
        recommendations.append("Enable two-factor authentication for high-impact breached accounts")
    if sensitive:
        recommendations.append("Review and update security settings for sensitive accounts")

    return BreachRiskAssessment(
        risk_level=risk_level,
        score=score,
        recommendations=recommendations,
        recent_breaches=recent,
        high_impact_breaches=high_impact,
    )

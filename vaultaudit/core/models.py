from datetime import datetime
from enum import Enum
from uuid import uuid4
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def as_local_naive(value: datetime) -> datetime:
    """Aware timestamps become naive local time; naive ones are taken as local already."""
    if value.utcoffset() is None:
        return value
    return value.astimezone().replace(tzinfo=None)


# --- Password records ---

class PasswordInput(BaseModel):
    service: str
    account: str
    secret: str
    notes: str | None = None
    expiry_date: datetime | None = None

    @field_validator("expiry_date")
    @classmethod
    def _local_naive(cls, value: datetime | None) -> datetime | None:
        return as_local_naive(value) if value is not None else None


class PasswordRecord(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid4()))
    owner_id: str
    service: str
    account: str
    secret: str
    notes: str | None = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
    # May already be in the past when the record is created
    expiry_date: datetime | None = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("created_at", "updated_at", "expiry_date")
    @classmethod
    def _local_naive(cls, value: datetime | None) -> datetime | None:
        return as_local_naive(value) if value is not None else None

    @model_validator(mode="after")
    def _check_timestamps(self):
        if self.updated_at < self.created_at:
            raise ValueError("updated_at must not be earlier than created_at")
        return self


# --- Strength ---

class StrengthLevel(str, Enum):
    VERY_WEAK = "very-weak"
    WEAK = "weak"
    FAIR = "fair"
    GOOD = "good"
    STRONG = "strong"


class StrengthIndicator(BaseModel):
    score: int = Field(ge=0, le=4)
    level: StrengthLevel
    color: str
    text: str
    percentage: int = Field(ge=0, le=100)


class StrengthAnalysis(BaseModel):
    score: int = Field(ge=0, le=4)
    warning: str = ""
    suggestions: list[str] = []
    entropy_bits: float = 0.0
    crack_time_display: str = ""
    patterns: list[str] = []
    guesses: float = 0
    guesses_log10: float = 0.0


class RequirementChecks(BaseModel):
    length: bool
    uppercase: bool
    lowercase: bool
    numbers: bool
    symbols: bool


class MinimumRequirements(BaseModel):
    meets: bool
    requirements: RequirementChecks


class StrengthReport(BaseModel):
    strength: StrengthIndicator
    requirements: MinimumRequirements
    suggestions: list[str]
    analysis: StrengthAnalysis
    is_secure: bool


class ReuseCheck(BaseModel):
    is_reused: bool
    similar_passwords: list[str] = []


# --- Breaches ---

class PasswordBreachResult(BaseModel):
    is_breached: bool = False
    breach_count: int = 0
    last_checked: datetime = Field(default_factory=datetime.now)


class BreachRecord(BaseModel):
    """One breach as returned by the breached-account API (PascalCase on the wire)."""
    name: str = Field(alias="Name")
    title: str = Field(default="", alias="Title")
    domain: str = Field(default="", alias="Domain")
    breach_date: str = Field(default="", alias="BreachDate")
    added_date: str = Field(default="", alias="AddedDate")
    modified_date: str = Field(default="", alias="ModifiedDate")
    pwn_count: int = Field(default=0, alias="PwnCount")
    description: str = Field(default="", alias="Description")
    logo_path: str = Field(default="", alias="LogoPath")
    data_classes: list[str] = Field(default_factory=list, alias="DataClasses")
    is_verified: bool = Field(default=False, alias="IsVerified")
    is_fabricated: bool = Field(default=False, alias="IsFabricated")
    is_sensitive: bool = Field(default=False, alias="IsSensitive")
    is_retired: bool = Field(default=False, alias="IsRetired")
    is_spam_list: bool = Field(default=False, alias="IsSpamList")
    is_malware: bool = Field(default=False, alias="IsMalware")
    is_subscription_free: bool = Field(default=False, alias="IsSubscriptionFree")

    model_config = ConfigDict(populate_by_name=True)


class EmailBreachResult(BaseModel):
    is_breached: bool = False
    breach_count: int = 0
    breaches: list[BreachRecord] = []
    last_checked: datetime = Field(default_factory=datetime.now)


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BreachRiskAssessment(BaseModel):
    risk_level: RiskLevel
    score: int
    recommendations: list[str]
    recent_breaches: list[BreachRecord]
    high_impact_breaches: list[BreachRecord]


class ServiceBreachReport(BaseModel):
    has_breaches: bool = False
    breaches: list[BreachRecord] = []
    recommendations: list[str] = []


# --- Health & dashboard ---

class HealthStrength(BaseModel):
    score: int
    level: StrengthLevel
    color: str


class PasswordHealth(BaseModel):
    id: str
    service: str
    strength: HealthStrength
    is_weak: bool
    is_reused: bool
    is_old: bool
    is_breached: bool
    is_expiring: bool
    days_since_created: int
    days_until_expiry: int | None = None
    recommendations: list[str]
    # Only filled in when expired tracking is switched on
    is_expired: bool | None = None


class SecurityMetrics(BaseModel):
    total_passwords: int = 0
    weak_passwords: int = 0
    reused_passwords: int = 0
    old_passwords: int = 0
    breached_passwords: int = 0
    expiring_passwords: int = 0
    security_score: int = 0


class AlertType(str, Enum):
    WEAK_PASSWORD = "weak_password"
    REUSED_PASSWORD = "reused_password"
    OLD_PASSWORD = "old_password"
    BREACH = "breach"
    EXPIRING = "expiring"


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class AlertAction(BaseModel):
    label: str
    action: str
    is_primary: bool = False


class SecurityAlert(BaseModel):
    id: str
    type: AlertType
    severity: Severity
    title: str
    message: str
    service_name: str
    password_id: str
    created_at: datetime = Field(default_factory=datetime.now)
    is_read: bool = False
    actions: list[AlertAction] = []
    days_until_expiry: int | None = None


class SecurityDashboardData(BaseModel):
    metrics: SecurityMetrics
    password_health: list[PasswordHealth]
    recommendations: list[str]
    alerts: list[SecurityAlert]
    risk_level: RiskLevel


# --- Expiry ---

class ExpirySettings(BaseModel):
    enabled: bool = True
    # Days before expiry to send reminders
    reminder_days: list[int] = Field(default_factory=lambda: [30, 14, 7, 1])
    default_expiry_period: int = 90
    auto_extend_on_update: bool = True


class ExpiryReport(BaseModel):
    expired: list[PasswordRecord] = []
    expiring_soon: list[PasswordRecord] = []
    expiring_30_days: list[PasswordRecord] = []
    healthy: list[PasswordRecord] = []
    without_expiry: list[PasswordRecord] = []


class ExpiryStatistics(BaseModel):
    total_passwords: int
    with_expiry: int
    without_expiry: int
    expired: int
    expiring_soon: int
    average_days_until_expiry: int


# --- Notification preferences ---

class NotificationPreferences(BaseModel):
    security_alerts: bool = True
    password_expiry: bool = True
    breach_alerts: bool = True
    weak_password_alerts: bool = True


class DailyDigestSettings(BaseModel):
    weak_password_daily_enabled: bool = True
    weak_password_daily_time: str = Field(default="09:00", pattern=r"^\d{2}:\d{2}$")
    expiry_reminder_days: list[int] = Field(default_factory=lambda: [30, 14, 7, 1])

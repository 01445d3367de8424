import math
import re
from typing import Iterable
from zxcvbn import zxcvbn

from .models import (
    MinimumRequirements,
    RequirementChecks,
    ReuseCheck,
    StrengthAnalysis,
    StrengthIndicator,
    StrengthLevel,
    StrengthReport,
)

SYMBOLS = '!@#$%^&*(),.?":{}|<>'
MIN_LENGTH = 8
RECOMMENDED_LENGTH = 12
# zxcvbn gets slow on long inputs; entropy still uses the whole string
MODEL_MAX_LENGTH = 72

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"[0-9]")
_SYMBOL = re.compile("[" + re.escape(SYMBOLS) + "]")
_REPEATS = re.compile(r"(.)\1{2,}")
_SEQUENCES = re.compile(r"123|abc|qwe|asd|zxc", re.IGNORECASE)
_TOKEN_SPLIT = re.compile(r"[^0-9A-Za-z]+")

# (level, color, text) indexed by score
INDICATORS = [
    (StrengthLevel.VERY_WEAK, "#FF4444", "Very Weak"),
    (StrengthLevel.WEAK, "#FF8800", "Weak"),
    (StrengthLevel.FAIR, "#FFAA00", "Fair"),
    (StrengthLevel.GOOD, "#88DD00", "Good"),
    (StrengthLevel.STRONG, "#00CC44", "Strong"),
]

COMMON_PASSWORDS = frozenset({
    "password", "123456", "123456789", "qwerty", "abc123", "password123",
    "admin", "letmein", "welcome", "monkey", "1234567890", "password1",
    "qwerty123", "dragon", "master", "baseball", "football", "sunshine",
    "iloveyou", "trustno1", "batman", "superman", "charlie", "jordan",
    "princess", "liverpool", "arsenal", "chelsea", "manchester", "london",
})


def calculate_entropy(password: str) -> float:
    """Coarse upper bound: log2(charset ** length)."""
    charset = 0
    if _LOWER.search(password):
        charset += 26
    if _UPPER.search(password):
        charset += 26
    if _DIGIT.search(password):
        charset += 10
    if _SYMBOL.search(password):
        charset += 32
    if charset == 0:
        return 0.0
    return len(password) * math.log2(charset)


def indicator_for(score: int) -> StrengthIndicator:
    level, color, text = INDICATORS[score]
    return StrengthIndicator(score=score, level=level, color=color, text=text, percentage=(score + 1) * 20)


def expand_context(context: Iterable[str] | None) -> list[str]:
    """Service/account strings plus their alphanumeric parts (e.g. an e-mail's local part)."""
    tokens: list[str] = []
    for value in context or []:
        if not value:
            continue
        value = value.strip()
        if value:
            tokens.append(value)
        for part in _TOKEN_SPLIT.split(value):
            if len(part) >= 3:
                tokens.append(part)
    return list(dict.fromkeys(tokens))


def levenshtein_distance(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        current = [i]
        for j, cb in enumerate(b, 1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


class PasswordStrengthAnalyzer:
    """Scores single passwords. Holds no per-call state, safe to share."""

    def analyze(self, password: str, context: Iterable[str] | None = None) -> StrengthAnalysis:
        entropy = calculate_entropy(password)
        if not password:
            return StrengthAnalysis(score=0, entropy_bits=entropy)

        result = zxcvbn(password[:MODEL_MAX_LENGTH], user_inputs=expand_context(context))
        score = int(result["score"])
        warning = result["feedback"].get("warning") or ""

        if self.is_common_password(password):
            score = 0
            warning = warning or "This is a very common password."

        return StrengthAnalysis(
            score=score,
            warning=warning,
            suggestions=list(result["feedback"].get("suggestions") or []),
            entropy_bits=entropy,
            crack_time_display=str(
                result["crack_times_display"].get("offline_slow_hashing_1e4_per_second", "")
            ),
            patterns=[match.get("pattern", "") for match in result.get("sequence", [])],
            guesses=float(result["guesses"]),
            guesses_log10=float(result["guesses_log10"]),
        )

    def score(self, password: str, context: Iterable[str] | None = None) -> int:
        return self.analyze(password, context).score

    def get_indicator(self, password: str, context: Iterable[str] | None = None) -> StrengthIndicator:
        return indicator_for(self.score(password, context))

    def suggestions(self, password: str, context: Iterable[str] | None = None) -> list[str]:
        suggestions = list(self.analyze(password, context).suggestions)

        if len(password) < MIN_LENGTH:
            suggestions.append("Use at least 8 characters")
        if len(password) < RECOMMENDED_LENGTH:
            suggestions.append("Consider using 12 or more characters for better security")
        if not _UPPER.search(password):
            suggestions.append("Add uppercase letters")
        if not _LOWER.search(password):
            suggestions.append("Add lowercase letters")
        if not _DIGIT.search(password):
            suggestions.append("Add numbers")
        if not _SYMBOL.search(password):
            suggestions.append("Add special characters (!@#$%^&*)")
        if _REPEATS.search(password):
            suggestions.append("Avoid repeating characters")
        if _SEQUENCES.search(password):
            suggestions.append("Avoid common sequences")

        return list(dict.fromkeys(suggestions))

    def meets_minimum(self, password: str) -> MinimumRequirements:
        checks = RequirementChecks(
            length=len(password) >= MIN_LENGTH,
            uppercase=bool(_UPPER.search(password)),
            lowercase=bool(_LOWER.search(password)),
            numbers=bool(_DIGIT.search(password)),
            symbols=bool(_SYMBOL.search(password)),
        )
        return MinimumRequirements(meets=all(checks.model_dump().values()), requirements=checks)

    def strength_report(self, password: str, context: Iterable[str] | None = None) -> StrengthReport:
        analysis = self.analyze(password, context)
        indicator = indicator_for(analysis.score)
        requirements = self.meets_minimum(password)
        return StrengthReport(
            strength=indicator,
            requirements=requirements,
            suggestions=self.suggestions(password, context),
            analysis=analysis,
            is_secure=indicator.score >= 3 and requirements.meets,
        )

    @staticmethod
    def is_common_password(password: str) -> bool:
        return password.lower() in COMMON_PASSWORDS

    @staticmethod
    def check_reuse(password: str, existing_passwords: Iterable[str]) -> ReuseCheck:
        existing = list(existing_passwords)
        similar = [
            other for other in existing
            if other != password and levenshtein_distance(password, other) < 3
        ]
        return ReuseCheck(is_reused=password in existing, similar_passwords=similar)

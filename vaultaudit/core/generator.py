import random
import secrets
import string
from typing import Iterable

from .strength import SYMBOLS, PasswordStrengthAnalyzer


def generate_password(need_number: bool = True,
                      need_lowercase: bool = True,
                      need_uppercase: bool = True,
                      need_special_char: bool = True,
                      custom_char: str = "",
                      length: int = 16) -> str:
    pool_map = []
    if need_number:       pool_map.append(string.digits)
    if need_lowercase:    pool_map.append(string.ascii_lowercase)
    if need_uppercase:    pool_map.append(string.ascii_uppercase)
    # Same symbol set the strength checks look for
    if need_special_char: pool_map.append(SYMBOLS)
    if not pool_map and not custom_char:
        raise ValueError("At least one character type must be selected")
    if length < len(pool_map):
        raise ValueError(f"Length {length} is too short for {len(pool_map)} required character types")

    password_chars = [secrets.choice(chars) for chars in pool_map]
    alphabet = sorted(set("".join(pool_map) + custom_char))
    for _ in range(length - len(password_chars)):
        password_chars.append(secrets.choice(alphabet))
    random.SystemRandom().shuffle(password_chars)
    return "".join(password_chars)


def generate_strong_password(analyzer: PasswordStrengthAnalyzer | None = None,
                             context: Iterable[str] | None = None,
                             length: int = 16,
                             attempts: int = 20) -> str:
    """Replacement password that meets the minimum rules and scores 4 against `context`."""
    analyzer = analyzer or PasswordStrengthAnalyzer()
    context = list(context or [])
    for _ in range(attempts):
        candidate = generate_password(length=length)
        if analyzer.meets_minimum(candidate).meets and analyzer.score(candidate, context) == 4:
            return candidate
    raise ValueError(f"No strong password found in {attempts} attempts at length {length}")

"""Scores generated replies for unsupported or contradictory claims.

Only weather can be checked against real data. Everything else (prices,
clock times, absolute wording) is flagged as overconfidence and softened
rather than verified, which is why the score is capped.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field

from src.config import settings
from src.weather.models import ExternalContext, WeatherContext

logger = logging.getLogger(__name__)

SUSPICIOUS_THRESHOLD = 30

TEMPERATURE_PENALTY = 30
CONDITION_PENALTY = 20
SPECIFIC_CLAIM_PENALTY = 8

TEMPERATURE_TOLERANCE = 3
RAIN_TOLERANCE = 10

_TEMPERATURE_RE = re.compile(r"\d+\s*°\s*[CF]|\d+\s*degrees", re.IGNORECASE)
_CONDITION_RE = re.compile(r"\b(rain|sunny|cloudy|storm|snow|fog|humid)\b", re.IGNORECASE)
_HEDGES = ("typically", "usually", "probably", "normally")

_SPECIFIC_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"exactly \$?\d+", re.IGNORECASE),
    re.compile(r"precisely \$?\d+", re.IGNORECASE),
    re.compile(r"\$\d{3,}\.\d{2}"),
    re.compile(r"\b\d{1,2}:\d{2}\s*(?:AM|PM|am|pm)\b"),
    re.compile(r"\b(?:guaranteed|definitely|always|never)\b", re.IGNORECASE),
)

# A minus sign only counts when it is not a range dash ("18-22°C").
_STATED_TEMP_RE = re.compile(r"(?:(?<![\w-])(-))?(?<!\d)(\d+)\s*°\s*([CF])")
_RAIN_CLAIM_RE = re.compile(
    r"(\d+)%\s*(?:chance|probability)?\s*(?:of)?\s*rain", re.IGNORECASE
)

_ABSOLUTES = {
    "guaranteed": "likely",
    "definitely": "probably",
    "always": "typically",
    "never": "rarely",
}
_ABSOLUTE_RE = re.compile(r"\b(guaranteed|definitely|always|never)\b", re.IGNORECASE)
_CLOCK = r"\d{1,2}:\d{2}\s*(?:AM|PM|am|pm)"
_CLOCK_ISSUE_RE = re.compile(r"\d{1,2}:\d{2}|\b(?:AM|PM|am|pm)\b")
_AT_CLOCK_RE = re.compile(rf"\bat\s+({_CLOCK})\b", re.IGNORECASE)
_BARE_CLOCK_RE = re.compile(rf"(?<!\baround\s)(?<!\bat\s)\b({_CLOCK})", re.IGNORECASE)
_SCHEDULE_VERB_RE = re.compile(
    r"starts|begins|opens|served|scheduled|departs|arrives|closes", re.IGNORECASE
)
_PRICE_RE = re.compile(r"(\b(?:approximately|around|about)\s+)?\$(\d{3,})\.\d{2}", re.IGNORECASE)
_SENTENCE_START_RE = re.compile(r"(^|[.!?]\s+)([a-z])")


@dataclass
class Detection:
    suspicious: bool
    issues: list[str] = field(default_factory=list)
    confidence: int = 0


@dataclass
class ValidationResult:
    """Outcome of :meth:`FactValidator.validate`.

    ``text`` is what the caller should use next: the original, or the
    repaired text when ``was_fixed`` is set.
    """

    valid: bool
    text: str
    confidence: int = 0
    issues: list[str] = field(default_factory=list)
    was_fixed: bool = False

    @property
    def inconclusive(self) -> bool:
        """Suspicious but neither accepted nor repaired."""
        return not self.valid and not self.was_fixed


def _match_case(original: str, replacement: str) -> str:
    if original.isupper():
        return replacement.upper()
    if original[:1].isupper():
        return replacement.capitalize()
    return replacement


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def _stated_celsius(match: re.Match[str]) -> float:
    degrees = int(match.group(2))
    if match.group(1):
        degrees = -degrees
    if match.group(3) == "F":
        return (degrees - 32) * 5 / 9
    return degrees


def _weather(context: ExternalContext | None) -> WeatherContext | None:
    if context is not None and context.kind == "weather":
        return context
    return None


class FactValidator:
    def __init__(self, cap: int | None = None, fix_ceiling: int | None = None) -> None:
        self.cap = cap if cap is not None else settings.validator_confidence_cap
        if fix_ceiling is None:
            fix_ceiling = settings.validator_fix_ceiling
        self.fix_ceiling = fix_ceiling

    def detect(self, text: str, external_context: ExternalContext | None = None) -> Detection:
        issues: list[str] = []
        score = 0
        weather = _weather(external_context)

        if weather is None:
            if _TEMPERATURE_RE.search(text):
                issues.append("Specific temperature mentioned without weather data")
                score += TEMPERATURE_PENALTY
            if _CONDITION_RE.search(text) and not any(h in text.lower() for h in _HEDGES):
                issues.append("Weather conditions stated without data source")
                score += CONDITION_PENALTY

        for pattern in _SPECIFIC_PATTERNS:
            for match in pattern.finditer(text):
                issues.append(f'Overly specific claim: "{match.group(0)}"')
                score += SPECIFIC_CLAIM_PENALTY

        if weather is not None:
            issues.extend(self._contradictions(text, weather))

        confidence = max(0, min(score, self.cap))
        return Detection(suspicious=bool(issues), issues=issues, confidence=confidence)

    def _contradictions(self, text: str, weather: WeatherContext) -> list[str]:
        """Numeric claims that disagree with the forecast beyond tolerance."""
        issues = []
        expected = _round_half_up(weather.temp_avg)
        for match in _STATED_TEMP_RE.finditer(text):
            if abs(_stated_celsius(match) - expected) > TEMPERATURE_TOLERANCE:
                issues.append(
                    f"Temperature {match.group(0)} differs from forecast ({expected}°C)"
                )
        for match in _RAIN_CLAIM_RE.finditer(text):
            if abs(int(match.group(1)) - weather.rain_probability) > RAIN_TOLERANCE:
                issues.append(
                    f"Rain probability claim differs from forecast "
                    f"(actual: {weather.rain_probability}%)"
                )
        return issues

    def fix(self, text: str, issues: list[str]) -> str:
        fixed = re.sub(r"exactly (\$?\d+)", r"approximately \1", text, flags=re.IGNORECASE)
        fixed = re.sub(r"precisely (\$?\d+)", r"around \1", fixed, flags=re.IGNORECASE)

        fixed = _ABSOLUTE_RE.sub(
            lambda m: _match_case(m.group(0), _ABSOLUTES[m.group(0).lower()]), fixed
        )

        if any(_CLOCK_ISSUE_RE.search(issue) for issue in issues):
            fixed = _AT_CLOCK_RE.sub(r"around \1", fixed)

            def _near_schedule(m: re.Match[str]) -> str:
                before = m.string[max(0, m.start() - 50):m.start()]
                if _SCHEDULE_VERB_RE.search(before):
                    return f"around {m.group(1)}"
                return m.group(0)

            fixed = _BARE_CLOCK_RE.sub(_near_schedule, fixed)

        def _round_price(m: re.Match[str]) -> str:
            rounded = (int(m.group(2)) + 5) // 10 * 10
            hedge = m.group(1) or "around "
            return f"{hedge}${rounded}"

        fixed = _PRICE_RE.sub(_round_price, fixed)
        return _SENTENCE_START_RE.sub(lambda m: m.group(1) + m.group(2).upper(), fixed)

    def validate(
        self,
        text: str,
        external_context: ExternalContext | None = None,
        auto_fix: bool = True,
    ) -> ValidationResult:
        detection = self.detect(text, external_context)
        if not detection.suspicious or detection.confidence < SUSPICIOUS_THRESHOLD:
            return ValidationResult(valid=True, text=text, confidence=detection.confidence)

        logger.info(
            "Unsupported claims detected (confidence %d): %s",
            detection.confidence,
            detection.issues,
        )
        if auto_fix and detection.confidence <= self.fix_ceiling:
            return ValidationResult(
                valid=True,
                text=self.fix(text, detection.issues),
                confidence=detection.confidence,
                issues=detection.issues,
                was_fixed=True,
            )

        logger.warning("Validation inconclusive at confidence %d", detection.confidence)
        return ValidationResult(
            valid=False,
            text=text,
            confidence=detection.confidence,
            issues=detection.issues,
        )

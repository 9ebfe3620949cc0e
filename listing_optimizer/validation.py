"""
Validation and sanitization of generated listings.

Checks run per section:
1. Title - presence, length range, HTML entities, special characters
2. Bullets - presence, per-bullet length
3. Description - presence, minimum length, URLs/emails/phone numbers
4. Keywords - type, duplicates, tag limit
5. Banned words - word-boundary scan across title, bullets and description

Hard errors block the listing; warnings are informational and the offending
content is corrected where possible.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from .config import MAX_INPUT_LENGTH, PROHIBITED_WORDS
from .models import GenerationResponse, QualityScore, RuleSet

logger = logging.getLogger(__name__)

MIN_BULLET_CHARS = 20
MAX_BULLET_CHARS = 500
MIN_KEYWORD_CHARS = 2

HTML_ENTITY = re.compile(r"&#?[a-z0-9]+;", re.IGNORECASE)
SPECIAL_CHARS = re.compile(r"[<>{}\[\]\\]")
URL = re.compile(r"https?://\S+|www\.\S+", re.IGNORECASE)
EMAIL = re.compile(r"[a-z0-9._%+-]+@[a-z0-9.-]+\.[a-z]{2,}", re.IGNORECASE)
PHONE = re.compile(r"(?:\(\d{3}\)\s?|\b\d{3}[-.\s]?)\d{3}[-.\s]?\d{4}\b")
MULTISPACE = re.compile(r"[ \t]{2,}")

INJECTION_PHRASES = [
    re.compile(r"ignore previous instructions", re.IGNORECASE),
    re.compile(r"disregard all", re.IGNORECASE),
    re.compile(r"forget everything", re.IGNORECASE),
    re.compile(r"new instructions:", re.IGNORECASE),
]
EXCESS_NEWLINES = re.compile(r"\n{3,}")


@dataclass
class ValidationResult:
    """Result of validating one generated listing."""
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    sanitized_response: Optional[GenerationResponse] = None
    quality_score: Optional[QualityScore] = None

    @property
    def error_summary(self) -> str:
        """Human-readable error summary."""
        if not self.errors:
            return "Valid"
        return "; ".join(self.errors)


@dataclass
class _SectionResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    value: Any = None


def banned_word_patterns(words) -> list[tuple[str, re.Pattern]]:
    """Compile word-boundary, case-insensitive patterns for banned words."""
    # \b does not anchor next to non-word characters such as "#1"
    return [
        (word, re.compile(rf"(?<!\w){re.escape(word)}(?!\w)", re.IGNORECASE))
        for word in words
    ]


def find_banned_words(text: str, patterns: list[tuple[str, re.Pattern]]) -> list[str]:
    """Return the banned words present in text."""
    return [word for word, pattern in patterns if pattern.search(text)]


def listing_text(response: GenerationResponse) -> str:
    """Title, description and bullets joined for content scans."""
    return " ".join([response.title, response.description, *response.bullets])


class ResponseValidator:
    """
    Validate and sanitize generated listings against a platform rule set.

    Args:
        scorer: Optional QualityScorer; when set, valid listings are scored
        banned_words: Fallback banned-word list for rule sets without one
    """

    def __init__(self, scorer=None, banned_words=PROHIBITED_WORDS):
        self.scorer = scorer
        self.default_banned_words = tuple(banned_words)

    def validate(
        self,
        response: Union[GenerationResponse, Mapping[str, Any]],
        rule_set: RuleSet,
    ) -> ValidationResult:
        """
        Validate one listing.

        Args:
            response: Provider output, as a model or a raw mapping
            rule_set: Platform rules to validate against

        Returns:
            ValidationResult; sanitized_response is set only when valid
        """
        raw = response.model_dump() if isinstance(response, GenerationResponse) else dict(response)
        errors: list[str] = []
        warnings: list[str] = []

        sections = [
            ("title", self._validate_title(raw.get("title"), rule_set)),
            ("bullets", self._validate_bullets(raw.get("bullets"))),
            ("description", self._validate_description(raw.get("description"), rule_set)),
            ("keywords", self._validate_keywords(raw.get("keywords"), rule_set)),
        ]
        sanitized: dict[str, Any] = {}
        for name, section in sections:
            errors.extend(section.errors)
            warnings.extend(section.warnings)
            sanitized[name] = section.value

        notes = raw.get("platform_notes")
        sanitized["platform_notes"] = notes.strip() if isinstance(notes, str) else ""

        if errors:
            logger.debug(f"Validation failed: {errors}")
            return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

        listing = GenerationResponse(**sanitized)

        words = rule_set.banned_words or self.default_banned_words
        for word in find_banned_words(listing_text(listing), banned_word_patterns(words)):
            warnings.append(f'Contains prohibited word: "{word}"')

        quality_score = None
        if self.scorer is not None:
            quality_score = self.scorer.score(listing, rule_set)

        return ValidationResult(
            is_valid=True,
            errors=errors,
            warnings=warnings,
            sanitized_response=listing,
            quality_score=quality_score,
        )

    def _validate_title(self, title: Any, rules: RuleSet) -> _SectionResult:
        result = _SectionResult(value="")
        if not isinstance(title, str) or not title.strip():
            result.errors.append("Title is empty")
            return result

        sanitized = title.strip()
        max_len = rules.title_range.max
        if len(sanitized) > max_len:
            original_len = len(sanitized)
            sanitized = truncate_at_word(sanitized, max_len)
            result.errors.append(
                f"Title exceeds maximum length of {max_len} characters "
                f"(current: {original_len}, truncated to {len(sanitized)})"
            )

        if HTML_ENTITY.search(sanitized):
            result.warnings.append("Title contains HTML entities")
            sanitized = HTML_ENTITY.sub("", sanitized)

        if SPECIAL_CHARS.search(sanitized):
            result.warnings.append("Title contains special characters")
            sanitized = SPECIAL_CHARS.sub("", sanitized)

        sanitized = MULTISPACE.sub(" ", sanitized).strip()
        if not sanitized:
            result.errors.append("Title is empty")
            return result

        min_len = rules.title_range.min
        if len(sanitized) < min_len:
            result.warnings.append(
                f"Title is below recommended minimum of {min_len} characters (current: {len(sanitized)})"
            )

        result.value = sanitized
        return result

    def _validate_bullets(self, bullets: Any) -> _SectionResult:
        result = _SectionResult(value=[])
        if not isinstance(bullets, (list, tuple)):
            result.errors.append("Bullets must be a list")
            return result
        if not bullets:
            result.errors.append("At least one bullet point is required")
            return result

        for index, bullet in enumerate(bullets, start=1):
            if not isinstance(bullet, str):
                result.errors.append(f"Bullet {index} is not a string")
                continue
            trimmed = bullet.strip()
            if not trimmed:
                result.warnings.append(f"Bullet {index} is empty")
                continue
            if len(trimmed) < MIN_BULLET_CHARS:
                result.warnings.append(f"Bullet {index} is too short ({len(trimmed)} chars)")
            if len(trimmed) > MAX_BULLET_CHARS:
                result.warnings.append(f"Bullet {index} is too long ({len(trimmed)} chars)")
            result.value.append(trimmed)

        if not result.errors and not result.value:
            result.errors.append("At least one bullet point is required")
        return result

    def _validate_description(self, description: Any, rules: RuleSet) -> _SectionResult:
        result = _SectionResult(value="")
        if not isinstance(description, str) or not description.strip():
            result.errors.append("Description is empty")
            return result

        sanitized = description.strip()

        if URL.search(sanitized):
            result.warnings.append("Description contains URLs")
            sanitized = URL.sub("", sanitized)

        if EMAIL.search(sanitized):
            result.warnings.append("Description contains email addresses")
            sanitized = EMAIL.sub("", sanitized)

        if PHONE.search(sanitized):
            result.warnings.append("Description contains phone numbers")
            sanitized = PHONE.sub("", sanitized)

        sanitized = MULTISPACE.sub(" ", sanitized).strip()
        if not sanitized:
            result.errors.append("Description is empty")
            return result

        if len(sanitized) < rules.min_description:
            result.warnings.append(
                f"Description is below recommended minimum of {rules.min_description} "
                f"characters (current: {len(sanitized)})"
            )

        result.value = sanitized
        return result

    def _validate_keywords(self, keywords: Any, rules: RuleSet) -> _SectionResult:
        result = _SectionResult(value=[])
        if not isinstance(keywords, (list, tuple)):
            result.errors.append("Keywords must be a list")
            return result

        seen = set()
        for index, keyword in enumerate(keywords, start=1):
            if not isinstance(keyword, str):
                result.warnings.append(f"Keyword {index} is not a string")
                continue
            trimmed = keyword.strip().lower()
            if not trimmed:
                continue
            if len(trimmed) < MIN_KEYWORD_CHARS:
                result.warnings.append(f'Keyword "{trimmed}" is too short')
                continue
            if trimmed in seen:
                continue
            seen.add(trimmed)
            result.value.append(trimmed)

        if len(result.value) > rules.max_tags:
            result.warnings.append(
                f"Too many keywords: {len(result.value)} (maximum: {rules.max_tags})"
            )
            result.value = result.value[:rules.max_tags]
        return result


def truncate_at_word(text: str, limit: int) -> str:
    """
    Cut text to at most limit characters without splitting a word.

    Falls back to a hard cut when the first word alone exceeds the limit.
    """
    if len(text) <= limit:
        return text
    cut = text[:limit]
    if not text[limit].isspace():
        boundary = cut.rfind(" ")
        if boundary > 0:
            cut = cut[:boundary]
    return cut.rstrip()


def sanitize_input(text: Optional[str]) -> str:
    """
    Strip prompt-injection phrases from user-supplied text.

    Also collapses runs of 3+ newlines to 2 and caps the length.
    """
    if not text:
        return ""

    sanitized = text.strip()
    for pattern in INJECTION_PHRASES:
        sanitized = pattern.sub("", sanitized)

    sanitized = EXCESS_NEWLINES.sub("\n\n", sanitized)

    if len(sanitized) > MAX_INPUT_LENGTH:
        sanitized = sanitized[:MAX_INPUT_LENGTH]

    return sanitized

"""
Rubric-based quality scoring for validated listings.

Four sections add up to 100 points:
- title (30): character utilization, keyword placement, readability
- bullets (30): benefit-first shape, specificity, optimal length
- description (30): minimum length, paragraph structure, lexical variety
- compliance (10): banned words, platform limits

Scoring is a pure function of (listing, rules); no randomness.
"""
import re

from .config import PROHIBITED_WORDS
from .models import (
    BulletsScore,
    ComplianceScore,
    DescriptionScore,
    GenerationResponse,
    Grade,
    QualityScore,
    RuleSet,
    ScoreBreakdown,
    TitleScore,
)
from .validation import banned_word_patterns, find_banned_words, listing_text

KEYWORD_WINDOW = 50
CAPITALIZED_WORD = re.compile(r"\b[A-Z][a-z]+\b")
# Capitalized benefit phrase, then a spaced dash of any width
BENEFIT_FIRST = re.compile(r"^[A-Z][A-Z0-9\s&'/-]*\s[-–—]\s")
SPECIFIC_DETAIL = re.compile(
    r"\d+|inch|cm|mm|oz|lb|kg|cotton|steel|plastic|aluminum|wood", re.IGNORECASE
)
PARAGRAPH_BREAK = re.compile(r"\n\s*\n+")
BULLET_MIN_OPTIMAL = 50
BULLET_MAX_OPTIMAL = 150


def _band(ratio: float, bands: tuple[tuple[float, int], ...], floor: int = 2) -> int:
    for threshold, points in bands:
        if ratio >= threshold:
            return points
    return floor


def _unique_ratio(text: str) -> float:
    words = text.split()
    if not words:
        return 0.0
    return len({w.lower() for w in words}) / len(words)


def grade_for(percentage: int) -> Grade:
    """Map a percentage to its grade band."""
    if percentage >= 90:
        return Grade.EXCELLENT
    if percentage >= 75:
        return Grade.GOOD
    if percentage >= 60:
        return Grade.FAIR
    return Grade.POOR


class QualityScorer:
    """Compute a QualityScore for an already-valid listing."""

    UTILIZATION_BANDS = ((90, 10), (80, 8), (70, 6), (60, 4))
    BENEFIT_BANDS = ((0.8, 10), (0.6, 8), (0.4, 5))
    SPECIFICITY_BANDS = ((0.6, 10), (0.4, 7), (0.2, 4))
    LENGTH_BANDS = ((0.8, 10), (0.6, 7), (0.4, 4))

    def __init__(self, banned_words=PROHIBITED_WORDS):
        self.default_banned_words = tuple(banned_words)

    def score(self, response: GenerationResponse, rules: RuleSet) -> QualityScore:
        """
        Score a listing.

        Args:
            response: Sanitized listing
            rules: Platform rules it was validated against

        Returns:
            QualityScore with breakdown and ordered recommendations
        """
        title = self.score_title(response.title, rules)
        bullets = self.score_bullets(response.bullets)
        description = self.score_description(response.description, rules)
        compliance = self.score_compliance(response, rules)

        total = title.score + bullets.score + description.score + compliance.score
        max_score = title.max_score + bullets.max_score + description.max_score + compliance.max_score
        percentage = int(round(total / max_score * 100))

        return QualityScore(
            total=total,
            max_score=max_score,
            percentage=percentage,
            grade=grade_for(percentage),
            breakdown=ScoreBreakdown(
                title=title,
                bullets=bullets,
                description=description,
                compliance=compliance,
            ),
            recommendations=tuple(self.recommendations(title, bullets, description, compliance)),
        )

    def score_title(self, title: str, rules: RuleSet) -> TitleScore:
        utilization = len(title) / rules.title_range.max * 100
        score = _band(utilization, self.UTILIZATION_BANDS)

        # front-loaded keyword: any capitalized word early in the title
        keyword_placement = bool(CAPITALIZED_WORD.search(title[:KEYWORD_WINDOW]))
        score += 10 if keyword_placement else 5

        readability = _unique_ratio(title) > 0.7
        score += 10 if readability else 5

        return TitleScore(
            score=score,
            character_utilization=utilization,
            keyword_placement=keyword_placement,
            readability=readability,
        )

    def score_bullets(self, bullets: list[str]) -> BulletsScore:
        if not bullets:
            return BulletsScore(score=0, benefit_first=0.0, specificity=0.0, optimal_length=0.0)

        count = len(bullets)
        benefit_first = sum(1 for b in bullets if BENEFIT_FIRST.match(b)) / count
        specificity = sum(1 for b in bullets if SPECIFIC_DETAIL.search(b)) / count
        optimal_length = sum(
            1 for b in bullets if BULLET_MIN_OPTIMAL <= len(b) <= BULLET_MAX_OPTIMAL
        ) / count

        score = (
            _band(benefit_first, self.BENEFIT_BANDS)
            + _band(specificity, self.SPECIFICITY_BANDS)
            + _band(optimal_length, self.LENGTH_BANDS)
        )
        return BulletsScore(
            score=score,
            benefit_first=benefit_first,
            specificity=specificity,
            optimal_length=optimal_length,
        )

    def score_description(self, description: str, rules: RuleSet) -> DescriptionScore:
        meets_min_length = len(description) >= rules.min_description
        paragraphs = [p for p in PARAGRAPH_BREAK.split(description) if p.strip()]
        has_structure = len(paragraphs) >= 2
        seo_optimized = _unique_ratio(description) > 0.6

        score = sum(10 if flag else 5 for flag in (meets_min_length, has_structure, seo_optimized))
        return DescriptionScore(
            score=score,
            meets_min_length=meets_min_length,
            has_structure=has_structure,
            seo_optimized=seo_optimized,
        )

    def score_compliance(self, response: GenerationResponse, rules: RuleSet) -> ComplianceScore:
        violations = []

        words = rules.banned_words or self.default_banned_words
        found = find_banned_words(listing_text(response), banned_word_patterns(words))
        violations.extend(f'Contains prohibited word: "{word}"' for word in found)
        no_prohibited_words = not found

        title_in_range = rules.title_range.min <= len(response.title) <= rules.title_range.max
        description_meets_min = len(response.description) >= rules.min_description
        keywords_in_limit = len(response.keywords) <= rules.max_tags
        follows_platform_rules = title_in_range and description_meets_min and keywords_in_limit

        if not title_in_range:
            violations.append("Title length out of range")
        if not description_meets_min:
            violations.append("Description too short")
        if not keywords_in_limit:
            violations.append("Too many keywords")

        score = (5 if no_prohibited_words else 0) + (5 if follows_platform_rules else 3)
        return ComplianceScore(
            score=score,
            no_prohibited_words=no_prohibited_words,
            follows_platform_rules=follows_platform_rules,
            violations=violations,
        )

    def recommendations(
        self,
        title: TitleScore,
        bullets: BulletsScore,
        description: DescriptionScore,
        compliance: ComplianceScore,
    ) -> list[str]:
        """Recommendations for failed checks, ordered title to compliance."""
        recs = []

        if title.character_utilization < 90:
            recs.append(
                "Increase title length to 90-100% of limit "
                f"(currently {round(title.character_utilization)}%)"
            )
        if not title.keyword_placement:
            recs.append(f"Front-load primary keywords in first {KEYWORD_WINDOW} characters")
        if not title.readability:
            recs.append("Improve title readability - reduce keyword repetition")

        if bullets.benefit_first < 0.8:
            recs.append('Use BENEFIT-FIRST structure: "BENEFIT — Feature with details"')
        if bullets.specificity < 0.6:
            recs.append("Add specific details: numbers, dimensions, materials")
        if bullets.optimal_length < 0.8:
            recs.append(
                f"Optimize bullet length to {BULLET_MIN_OPTIMAL}-{BULLET_MAX_OPTIMAL} characters each"
            )

        if not description.meets_min_length:
            recs.append("Expand description to meet minimum length requirement")
        if not description.has_structure:
            recs.append("Add clear structure with multiple paragraphs or sections")
        if not description.seo_optimized:
            recs.append("Improve keyword variety and natural integration")

        recs.extend(f"Fix: {v}" for v in compliance.violations)
        return recs

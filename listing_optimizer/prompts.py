"""
Prompt templates for structured listing generation.

The model is asked for a single JSON object so the response can be parsed and
validated without free-text heuristics.
"""
import json
from typing import Optional, Sequence

from .models import GenerationMode, GenerationRequest, RuleSet

# Bullet formula the quality rubric rewards
BULLET_FORMULA = """BENEFIT — Feature explanation with specific details

Examples:
- STAY ORGANIZED — 12 spacious compartments keep office supplies sorted and accessible
- SAVE TIME — Quick-dry technology reduces drying time by 40% compared to standard towels
- ENHANCE COMFORT — Memory foam padding provides all-day support for extended wear"""

RESPONSE_SCHEMA = {
    "title": "string",
    "bullets": ["string"],
    "description": "string",
    "keywords": ["string"],
    "platform_notes": "string",
}

SYSTEM_PROMPT = """You are a senior e-commerce copywriter who writes {platform} listings that rank and convert.

RULES:
- Title: {title_min}-{title_max} characters, front-load the primary keyword
- Bullets: 3-5 bullets, 50-150 characters each, following the formula below
- Description: at least {min_description} characters, two or more paragraphs separated by a blank line
- Keywords: at most {max_tags} distinct search terms
- Never use these words: {banned_words}
- No URLs, email addresses, phone numbers, HTML entities or brackets
- Never invent specifications that are not in the product data

BULLET FORMULA:
{bullet_formula}
{guidelines}
OUTPUT FORMAT:
Respond ONLY with valid JSON matching this exact schema:
{schema}"""

MODE_INSTRUCTIONS = {
    GenerationMode.OPTIMIZE: "Rewrite the existing listing below so it scores higher while keeping every fact.",
    GenerationMode.CREATE: "Write a complete new listing from the product details below.",
    GenerationMode.ANALYZE: "Analyse the listing below, then return an improved version; put the analysis in platform_notes.",
}


def build_system_prompt(request: GenerationRequest, rules: RuleSet) -> str:
    """Build the system prompt for a platform rule set."""
    guidelines = ""
    if rules.guidelines:
        guidelines = "\nPLATFORM GUIDELINES:\n" + "\n".join(f"- {g}" for g in rules.guidelines) + "\n"

    return SYSTEM_PROMPT.format(
        platform=rules.name or request.platform,
        title_min=rules.title_range.min,
        title_max=rules.title_range.max,
        min_description=rules.min_description,
        max_tags=rules.max_tags,
        banned_words=", ".join(rules.banned_words) or "none",
        bullet_formula=BULLET_FORMULA,
        guidelines=guidelines,
        schema=json.dumps(RESPONSE_SCHEMA, indent=2),
    )


def build_user_prompt(request: GenerationRequest, examples: Optional[Sequence] = None) -> str:
    """
    Build the user prompt describing the product.

    Args:
        request: Generation request
        examples: Optional stored high-scoring listings to imitate

    Returns:
        Formatted prompt string
    """
    product = request.product
    lines = [MODE_INSTRUCTIONS[request.mode], "", "PRODUCT DETAILS:"]

    if product.title:
        lines.append(f"- Title: {product.title}")
    if product.category:
        lines.append(f"- Category: {product.category}")
    if product.price is not None:
        lines.append(f"- Price: {product.price:.2f}")
    if product.description:
        lines.append(f"- Description: {product.description}")
    if product.specifications:
        lines.append("- Specifications: " + "; ".join(str(s) for s in product.specifications))
    if product.keywords:
        lines.append("- Target keywords: " + ", ".join(product.keywords))

    image = request.image_analysis
    if image:
        if image.main_features:
            lines.append("- Visible features: " + ", ".join(image.main_features))
        if image.colors:
            lines.append("- Colors: " + ", ".join(image.colors))
        if image.style:
            lines.append(f"- Style: {image.style}")

    if examples:
        lines.extend(["", "HIGH-SCORING EXAMPLES:"])
        for example in examples:
            output = example.output
            lines.append(json.dumps({
                "title": output.title,
                "bullets": output.bullets,
                "description": output.description[:400],
            }, ensure_ascii=False))

    lines.extend(["", "Return ONLY the JSON object."])
    return "\n".join(lines)


def build_prompt(
    request: GenerationRequest,
    rules: RuleSet,
    examples: Optional[Sequence] = None,
) -> tuple[str, str]:
    """Return (system_prompt, user_prompt) for a request."""
    return build_system_prompt(request, rules), build_user_prompt(request, examples)

"""
Configuration for generation backends, retry policy and platform rules.
"""
import logging
import os
from typing import Mapping, Optional

from .errors import ConfigurationError
from .models import ProviderDescriptor, RuleSet, TitleRange

logger = logging.getLogger(__name__)

# Retry/fallback policy
DEFAULT_MAX_RETRIES = 2
DEFAULT_MAX_PROVIDER_SWITCHES = 3
DEFAULT_COOLDOWN_SECONDS = 60.0
BACKOFF_BASE_MS = 1000
BACKOFF_CAP_MS = 5000
AUTO_TRAINING_THRESHOLD = 90

# Provider call settings
DEFAULT_TIMEOUT = 60.0
DEFAULT_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 4096

# Input sanitization
MAX_INPUT_LENGTH = 10000

# Feedback queue
FEEDBACK_QUEUE_SIZE = 100
DEFAULT_TRAINING_FILE = "results/training_examples.json"

PRIORITY_ENV = "LISTING_PROVIDER_PRIORITY"
TIMEOUT_ENV = "LISTING_PROVIDER_TIMEOUT"

# Backends in priority order (fastest/cheapest first). All speak the
# OpenAI chat-completions protocol at base_url.
BACKEND_DEFAULTS: dict[str, dict] = {
    "groq": {
        "key_env": "GROQ_API_KEY",
        "model_env": "GROQ_MODEL",
        "model": "llama-3.3-70b-versatile",
        "base_url": "https://api.groq.com/openai/v1",
        "max_tokens": 8192,
    },
    "cloudflare": {
        "key_env": "CLOUDFLARE_API_TOKEN",
        "model_env": "CLOUDFLARE_MODEL",
        "model": "@cf/meta/llama-3.1-8b-instruct",
        "base_url": "https://api.cloudflare.com/client/v4/accounts/{account_id}/ai/v1",
        "account_env": "CLOUDFLARE_ACCOUNT_ID",
        "max_tokens": 4096,
    },
    "gemini": {
        "key_env": "GEMINI_API_KEY",
        "model_env": "GEMINI_MODEL",
        "model": "gemini-2.0-flash",
        "base_url": "https://generativelanguage.googleapis.com/v1beta/openai/",
        "max_tokens": 8192,
        "temperature": 0.7,
    },
    "deepseek": {
        "key_env": "DEEPSEEK_API_KEY",
        "model_env": "DEEPSEEK_MODEL",
        "model": "deepseek-chat",
        "base_url": "https://api.deepseek.com/v1",
        "max_tokens": 4000,
        "temperature": 0.7,
    },
    "openai": {
        "key_env": "OPENAI_API_KEY",
        "model_env": "OPENAI_MODEL",
        "model": "gpt-4o-mini",
        "base_url": None,
        "max_tokens": 4096,
    },
}

# Words that never belong in marketplace copy
PROHIBITED_WORDS: tuple[str, ...] = (
    "FREE", "SALE", "BEST", "#1", "CHEAP", "GUARANTEE", "WINNER",
    "AMAZING", "INCREDIBLE", "UNBELIEVABLE", "PERFECT", "ULTIMATE",
    "REVOLUTIONARY", "MIRACLE", "MAGIC", "INSTANT", "EASY MONEY",
)

PLATFORM_RULES: dict[str, RuleSet] = {
    "amazon": RuleSet(
        name="Amazon",
        title_range=TitleRange(min=150, max=200),
        min_description=2000,
        max_tags=7,
        banned_words=PROHIBITED_WORDS,
        guidelines=(
            "Capitalize first letter of each word in title",
            "Include brand name and key features",
            "Use bullet points for product features",
            "Include dimensions and specifications",
            "Focus on benefits and use cases",
        ),
    ),
    "shopify": RuleSet(
        name="Shopify",
        title_range=TitleRange(min=60, max=70),
        min_description=300,
        max_tags=15,
        banned_words=PROHIBITED_WORDS,
        guidelines=(
            "Use natural, conversational language",
            "Tell a brand story",
            "Emphasize lifestyle and benefits",
            "Keep title concise and readable",
            "Mix broad and specific tags",
        ),
    ),
    "etsy": RuleSet(
        name="Etsy",
        title_range=TitleRange(min=100, max=140),
        min_description=1000,
        max_tags=13,
        banned_words=PROHIBITED_WORDS,
        guidelines=(
            "Keyword-rich title within 140 characters",
            "Add personal touch to description",
            "Include materials and dimensions",
            "Mention care instructions",
            "Emphasize handmade/unique qualities",
        ),
    ),
    "ebay": RuleSet(
        name="eBay",
        title_range=TitleRange(min=60, max=80),
        min_description=500,
        max_tags=10,
        banned_words=PROHIBITED_WORDS,
        guidelines=(
            "Keyword-dense title, max 80 characters",
            "No promotional language in title",
            "Include condition details",
            "Be factual and direct",
        ),
    ),
    "walmart": RuleSet(
        name="Walmart",
        title_range=TitleRange(min=40, max=75),
        min_description=400,
        max_tags=10,
        banned_words=PROHIBITED_WORDS,
        guidelines=(
            "Brand name first in title",
            "Concise and feature-focused",
            "Title Case only",
            "Fill all product attributes",
        ),
    ),
}

# Prompt rules for platforms without a table (callers supply their own RuleSet)
GENERIC_RULES = RuleSet(
    name="Marketplace",
    title_range=TitleRange(min=50, max=150),
    min_description=300,
    max_tags=10,
    banned_words=PROHIBITED_WORDS,
)


def get_platform_rules(platform: str) -> RuleSet:
    """Get the rule set for a marketplace."""
    try:
        return PLATFORM_RULES[platform.strip().lower()]
    except KeyError:
        available = ", ".join(PLATFORM_RULES)
        raise ConfigurationError(f"Unknown platform: {platform}. Available: {available}") from None


def get_all_platforms() -> list[str]:
    """Get all platforms with rule tables."""
    return list(PLATFORM_RULES)


def _backend_order(environ: Mapping[str, str]) -> list[str]:
    raw = (environ.get(PRIORITY_ENV) or "").strip()
    if not raw:
        return list(BACKEND_DEFAULTS)
    order = [name.strip().lower() for name in raw.split(",") if name.strip()]
    unknown = [name for name in order if name not in BACKEND_DEFAULTS]
    if unknown:
        raise ConfigurationError(f"Unknown backend(s) in {PRIORITY_ENV}: {', '.join(unknown)}")
    return order


def load_provider_descriptors(
    environ: Optional[Mapping[str, str]] = None,
) -> list[ProviderDescriptor]:
    """
    Build backend descriptors from environment variables.

    Backends missing a required credential are left out entirely.

    Args:
        environ: Mapping to read from (defaults to os.environ)

    Returns:
        Descriptors in priority order
    """
    if environ is None:
        environ = os.environ

    timeout_raw = (environ.get(TIMEOUT_ENV) or "").strip()
    try:
        timeout = float(timeout_raw) if timeout_raw else DEFAULT_TIMEOUT
    except ValueError:
        raise ConfigurationError(f"{TIMEOUT_ENV} must be a number, got {timeout_raw!r}") from None

    descriptors = []
    for priority, name in enumerate(_backend_order(environ), start=1):
        defaults = BACKEND_DEFAULTS[name]
        api_key = (environ.get(defaults["key_env"]) or "").strip()
        if not api_key:
            logger.debug(f"Skipping {name}: {defaults['key_env']} not set")
            continue

        base_url = defaults["base_url"]
        account_env = defaults.get("account_env")
        if account_env:
            account_id = (environ.get(account_env) or "").strip()
            if not account_id:
                logger.debug(f"Skipping {name}: {account_env} not set")
                continue
            base_url = base_url.format(account_id=account_id)

        descriptors.append(ProviderDescriptor(
            backend_id=name,
            provider_type=name,
            priority=priority,
            api_key=api_key,
            model=(environ.get(defaults["model_env"]) or "").strip() or defaults["model"],
            base_url=base_url,
            max_tokens=defaults.get("max_tokens", DEFAULT_MAX_TOKENS),
            temperature=defaults.get("temperature", DEFAULT_TEMPERATURE),
            timeout=timeout,
        ))

    logger.debug(f"Configured backends: {[d.backend_id for d in descriptors]}")
    return descriptors

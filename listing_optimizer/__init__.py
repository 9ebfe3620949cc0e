"""
Listing Optimizer - marketplace listing generation across interchangeable LLM backends.

The package picks a backend by priority, retries and falls back across
backends on failure, validates and scores the generated listing, and feeds
high-scoring results back into a training store.

Usage:
    import asyncio
    from listing_optimizer import create_orchestrator, GenerationRequest, ProductData

    orchestrator = create_orchestrator(training_file="results/training_examples.json")
    request = GenerationRequest(
        platform="amazon",
        product=ProductData(title="Steel Water Bottle", keywords=("insulated",)),
    )
    result = asyncio.run(orchestrator.generate(request))

    print(result.listing.title)
    print(result.quality_score.percentage, result.warnings)
"""

from .models import (
    GenerationMode,
    Grade,
    ProductSpec,
    ProductData,
    ImageAnalysis,
    GenerationRequest,
    GenerationResponse,
    TitleRange,
    RuleSet,
    ProviderDescriptor,
    GenerationOptions,
    QualityScore,
    GenerationResult,
    BatchInput,
)
from .errors import (
    ErrorKind,
    ListingError,
    ConfigurationError,
    ProviderError,
    AuthenticationFailure,
    RateLimitExceeded,
    ResponseFormatError,
    TransientNetworkError,
    ProviderTimeout,
    ValidationFailure,
    GenerationFailedError,
)
from .config import (
    PLATFORM_RULES,
    PROHIBITED_WORDS,
    get_platform_rules,
    get_all_platforms,
    load_provider_descriptors,
)
from .prompts import build_prompt
from .providers import (
    Provider,
    OpenAICompatibleProvider,
    register_provider,
    create_provider,
)
from .registry import ProviderRegistry
from .validation import ResponseValidator, ValidationResult, sanitize_input
from .scoring import QualityScorer
from .feedback import (
    FeedbackDispatcher,
    JsonTrainingStore,
    TrainingCandidate,
    TrainingExample,
)
from .orchestrator import GenerationOrchestrator, create_orchestrator

__version__ = "0.1.0"

__all__ = [
    # Models
    "GenerationMode",
    "Grade",
    "ProductSpec",
    "ProductData",
    "ImageAnalysis",
    "GenerationRequest",
    "GenerationResponse",
    "TitleRange",
    "RuleSet",
    "ProviderDescriptor",
    "GenerationOptions",
    "QualityScore",
    "GenerationResult",
    "BatchInput",
    # Errors
    "ErrorKind",
    "ListingError",
    "ConfigurationError",
    "ProviderError",
    "AuthenticationFailure",
    "RateLimitExceeded",
    "ResponseFormatError",
    "TransientNetworkError",
    "ProviderTimeout",
    "ValidationFailure",
    "GenerationFailedError",
    # Config
    "PLATFORM_RULES",
    "PROHIBITED_WORDS",
    "get_platform_rules",
    "get_all_platforms",
    "load_provider_descriptors",
    # Prompts
    "build_prompt",
    # Providers
    "Provider",
    "OpenAICompatibleProvider",
    "register_provider",
    "create_provider",
    "ProviderRegistry",
    # Validation and scoring
    "ResponseValidator",
    "ValidationResult",
    "sanitize_input",
    "QualityScorer",
    # Feedback
    "FeedbackDispatcher",
    "JsonTrainingStore",
    "TrainingCandidate",
    "TrainingExample",
    # Orchestrator
    "GenerationOrchestrator",
    "create_orchestrator",
]

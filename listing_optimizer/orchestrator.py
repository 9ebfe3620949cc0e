"""
Generation orchestrator: provider selection, retry/fallback and scoring.

One call to generate() walks SELECT -> CALL -> VALIDATE and ends in SUCCESS or
raises GenerationFailedError:

- validation failures and transient/timeout errors retry the same backend
  with capped exponential backoff
- rate limits put the backend in cooldown and switch to the next one without
  consuming a retry
- transient errors that outlast the retry budget also switch backends
- authentication failures fail immediately
- any other exception from a backend counts as transient
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional

from .config import BACKOFF_BASE_MS, BACKOFF_CAP_MS, get_platform_rules
from .errors import (
    ErrorKind,
    GenerationFailedError,
    ListingError,
    ProviderError,
    ProviderTimeout,
    TransientNetworkError,
    ValidationFailure,
)
from .feedback import (
    FeedbackDispatcher,
    FeedbackSink,
    JsonTrainingStore,
    TrainingCandidate,
    TrainingInput,
    TrainingOutput,
)
from .models import (
    GenerationMode,
    GenerationOptions,
    GenerationRequest,
    GenerationResult,
    ProductData,
    RuleSet,
)
from .providers import Provider, create_provider
from .registry import ProviderRegistry
from .scoring import QualityScorer
from .validation import ResponseValidator, sanitize_input

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

QUALITY_WARNING_THRESHOLD = 90
MAX_QUALITY_RECOMMENDATIONS = 3


def backoff_delay(retry: int) -> float:
    """Seconds to wait before retry number `retry` (1-based)."""
    return min(BACKOFF_BASE_MS * 2 ** retry, BACKOFF_CAP_MS) / 1000


def sanitize_request(request: GenerationRequest) -> GenerationRequest:
    """Return a copy of request with user text passed through sanitize_input."""
    product = request.product
    update = {}
    if product.title:
        update["title"] = sanitize_input(product.title)
    if product.description:
        update["description"] = sanitize_input(product.description)
    if product.category:
        update["category"] = sanitize_input(product.category)
    if product.keywords:
        update["keywords"] = tuple(sanitize_input(k) for k in product.keywords)
    if not update:
        return request
    cleaned = ProductData.model_validate({**product.model_dump(), **update})
    return request.model_copy(update={"product": cleaned})


class GenerationOrchestrator:
    """
    Turn a GenerationRequest into a validated, scored GenerationResult.

    Args:
        registry: Shared provider registry
        validator: Response validator (a scoring one is built by default)
        feedback_sink: Optional training sink, fed through a FeedbackDispatcher
        sleep: Awaitable sleep used for backoff (injectable for tests)
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        validator: Optional[ResponseValidator] = None,
        feedback_sink: Optional[FeedbackSink] = None,
        sleep: Sleep = asyncio.sleep,
        default_options: Optional[GenerationOptions] = None,
    ):
        self.registry = registry
        self.validator = validator or ResponseValidator(scorer=QualityScorer())
        if isinstance(feedback_sink, FeedbackDispatcher):
            self.feedback = feedback_sink
        else:
            self.feedback = FeedbackDispatcher(feedback_sink) if feedback_sink else None
        self._sleep = sleep
        self.default_options = default_options or GenerationOptions()

    async def generate(
        self,
        request: GenerationRequest,
        options: Optional[GenerationOptions] = None,
        rule_set: Optional[RuleSet] = None,
    ) -> GenerationResult:
        """
        Generate one listing with retry and backend fallback.

        Args:
            request: Generation request
            options: Retry/fallback policy (defaults to default_options)
            rule_set: Platform rules; looked up from request.platform if omitted

        Returns:
            GenerationResult with the sanitized listing, score and warnings

        Raises:
            GenerationFailedError: When retries and switches are exhausted,
                or immediately on authentication failure
            ConfigurationError: If no rule set exists for the platform
        """
        opts = options or self.default_options
        rules = rule_set or get_platform_rules(request.platform)
        if opts.sanitize_input:
            request = sanitize_request(request)

        provider = self.registry.select_provider()
        tried = [provider.name()]
        attempts = 1
        retries = 0
        backend_retries = 0
        switches = 0
        last_error: Optional[ListingError] = None

        while True:
            logger.info(
                f"Attempt {attempts} on {provider.name()} "
                f"(retry {backend_retries}/{opts.max_retries}, switches {switches})"
            )
            try:
                result = await self._attempt(provider, request, rules, opts)
            except ListingError as e:
                last_error = e
                kind = e.kind
                logger.warning(f"{provider.name()} failed ({kind.value}): {e}")
            else:
                result.attempts = attempts
                result.switches = switches
                self._submit_feedback(request, result, opts)
                return result

            if kind in (ErrorKind.AUTHENTICATION, ErrorKind.CONFIGURATION):
                break

            if kind != ErrorKind.RATE_LIMIT and backend_retries < opts.max_retries:
                backend_retries += 1
                retries += 1
                attempts += 1
                delay = backoff_delay(retries)
                logger.info(f"Retrying {provider.name()} in {delay * 1000:.0f}ms...")
                await self._sleep(delay)
                continue

            if kind == ErrorKind.VALIDATION:
                # a different backend would not fix a prompt/response mismatch
                break

            self.registry.mark_failed(provider.name(), opts.cooldown_seconds)
            next_provider = None
            if len(tried) < opts.max_provider_switches:
                next_provider = self.registry.next_provider(provider.name())
            if next_provider is None:
                logger.error(f"No fallback backend left after {provider.name()}")
                break

            logger.info(f"Switching from {provider.name()} to {next_provider.name()}")
            provider = next_provider
            tried.append(provider.name())
            switches += 1
            backend_retries = 0

        error = GenerationFailedError(attempts, switches, last_error, tried)
        logger.error(str(error))
        raise error from last_error

    async def _attempt(
        self,
        provider: Provider,
        request: GenerationRequest,
        rules: RuleSet,
        opts: GenerationOptions,
    ) -> GenerationResult:
        """One CALL + VALIDATE step."""
        timeout = opts.timeout or provider.timeout
        try:
            response = await asyncio.wait_for(provider.generate(request, rules), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(
                f"{provider.name()} took longer than {timeout:.0f}s", provider.name()
            ) from e
        except ListingError:
            raise
        except (ConnectionError, OSError) as e:
            raise TransientNetworkError(f"{provider.name()} connection error: {e}", provider.name()) from e
        except Exception as e:
            # a misbehaving backend still goes through retry and fallback
            raise ProviderError(f"{provider.name()} failed: {e!r}", provider.name()) from e

        validation = self.validator.validate(response, rules)
        if not validation.is_valid:
            logger.error(f"Validation failed: {validation.errors}")
            raise ValidationFailure(validation.errors, provider.name())

        warnings = list(validation.warnings)
        score = validation.quality_score
        if score is not None and score.percentage < QUALITY_WARNING_THRESHOLD:
            warnings.append(f"Quality score: {score.percentage}% ({score.grade.value})")
            warnings.extend(
                f"Recommendation: {rec}"
                for rec in score.recommendations[:MAX_QUALITY_RECOMMENDATIONS]
            )
        if warnings:
            logger.debug(f"Warnings: {warnings}")

        return GenerationResult(
            listing=validation.sanitized_response,
            quality_score=score,
            warnings=warnings,
            provider=provider.name(),
        )

    def _submit_feedback(
        self,
        request: GenerationRequest,
        result: GenerationResult,
        opts: GenerationOptions,
    ) -> None:
        if self.feedback is None or result.quality_score is None:
            return
        if result.quality_score.percentage < opts.auto_training_threshold:
            return

        try:
            product = request.product
            listing = result.listing
            self.feedback.submit(TrainingCandidate(
                platform=request.platform,
                category=product.category,
                mode=request.mode,
                seo_score=result.quality_score.percentage,
                input=TrainingInput(
                    title=product.title,
                    description=product.description,
                    keywords=list(product.keywords),
                    category=product.category,
                ),
                output=TrainingOutput(
                    title=listing.title,
                    bullets=listing.bullets,
                    description=listing.description,
                    keywords=listing.keywords,
                ),
            ))
        except Exception as e:
            logger.warning(f"Could not queue training candidate: {e}")

    async def test_connection(self) -> dict:
        """
        Send a tiny request to the currently selected backend.

        Returns:
            Dict with success flag, provider name and message
        """
        provider = self.registry.select_provider()
        ping = GenerationRequest(
            platform="amazon",
            product=ProductData(title="Test Product", description="Test", keywords=("test",)),
            mode=GenerationMode.CREATE,
        )
        try:
            await asyncio.wait_for(provider.generate(ping), timeout=provider.timeout)
        except Exception as e:
            return {"success": False, "provider": provider.name(), "message": str(e)}
        return {"success": True, "provider": provider.name(), "message": "Connection successful"}

    async def aclose(self) -> None:
        """Flush pending training feedback."""
        if self.feedback is not None:
            await self.feedback.aclose()


def create_orchestrator(
    training_file: Optional[str] = None,
    environ=None,
    **kwargs,
) -> GenerationOrchestrator:
    """
    Factory function wiring registry, providers and training store from the environment.

    Args:
        training_file: JSON training store path; enables feedback and prompt examples
        environ: Environment mapping (defaults to os.environ)
        **kwargs: Additional orchestrator parameters

    Returns:
        Configured GenerationOrchestrator

    Raises:
        ConfigurationError: If no backend has credentials
    """
    store = JsonTrainingStore(training_file) if training_file else None

    def factory(descriptor):
        if store is None:
            return create_provider(descriptor)
        return create_provider(descriptor, example_source=store.get_examples)

    registry = ProviderRegistry.from_environment(environ, factory=factory)
    return GenerationOrchestrator(registry, feedback_sink=store, **kwargs)

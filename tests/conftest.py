from __future__ import annotations

from typing import Callable, Optional, Union

import pytest

from listing_optimizer.config import PROHIBITED_WORDS
from listing_optimizer.models import (
    GenerationRequest,
    GenerationResponse,
    ProductData,
    ProviderDescriptor,
    RuleSet,
    TitleRange,
)
from listing_optimizer.providers import Provider
from listing_optimizer.registry import ProviderRegistry


# -----------------------------
# Test doubles
# -----------------------------
class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Backoff sleep that returns immediately and remembers the delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


Outcome = Union[GenerationResponse, Exception, Callable[[GenerationRequest], GenerationResponse]]


class FakeProvider(Provider):
    """
    Provider replaying a script of outcomes. The last outcome repeats once
    the script runs out.
    """

    def __init__(self, descriptor: ProviderDescriptor, *outcomes: Outcome):
        super().__init__(descriptor)
        self.outcomes = list(outcomes)
        self.requests: list[GenerationRequest] = []
        self.rules_seen: list[Optional[RuleSet]] = []

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def generate(self, request: GenerationRequest, rules: Optional[RuleSet] = None) -> GenerationResponse:
        self.requests.append(request)
        self.rules_seen.append(rules)
        index = min(len(self.requests), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, Exception):
            raise outcome
        if callable(outcome):
            return outcome(request)
        return outcome


# -----------------------------
# Helpers
# -----------------------------
def make_descriptor(backend_id: str, priority: int = 1, api_key: str = "key") -> ProviderDescriptor:
    return ProviderDescriptor(
        backend_id=backend_id,
        provider_type="fake",
        priority=priority,
        api_key=api_key,
        model=f"{backend_id}-model",
    )


def make_registry(*providers: FakeProvider, clock: Optional[FakeClock] = None) -> ProviderRegistry:
    by_id = {p.name(): p for p in providers}
    return ProviderRegistry(
        [p.descriptor for p in providers],
        factory=lambda d: by_id[d.backend_id],
        clock=clock or FakeClock(),
    )


def good_listing(**overrides) -> GenerationResponse:
    data = dict(
        title="Insulated Steel Water Bottle for Hiking and Travel",
        bullets=[
            "STAYS COLD 24 HOURS — double-wall steel keeps drinks icy all day long",
            "LEAKPROOF LID — silicone seal survives a tumble in your backpack",
        ],
        description=(
            "Built for long trails and longer commutes.\n\n"
            "The double-wall vacuum body holds temperature while the powder coat resists scratches."
        ),
        keywords=["water bottle", "insulated", "hiking"],
        platform_notes="Fits standard cup holders",
    )
    data.update(overrides)
    return GenerationResponse(**data)


@pytest.fixture
def rules() -> RuleSet:
    return RuleSet(
        name="Test",
        title_range=TitleRange(min=20, max=80),
        min_description=50,
        max_tags=5,
        banned_words=("FREE", "BEST", "#1"),
    )


@pytest.fixture
def request_() -> GenerationRequest:
    return GenerationRequest(
        platform="amazon",
        product=ProductData(
            title="Steel Water Bottle",
            description="Keeps drinks cold",
            category="Kitchen",
            keywords=("water bottle", "insulated"),
        ),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def generic_rules() -> RuleSet:
    return RuleSet(
        title_range=TitleRange(min=50, max=200),
        min_description=300,
        max_tags=10,
        banned_words=PROHIBITED_WORDS,
    )

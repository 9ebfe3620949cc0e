from __future__ import annotations

import threading

import pytest

from listing_optimizer.errors import ConfigurationError
from listing_optimizer.models import ProviderDescriptor
from listing_optimizer.providers import GroqProvider, create_provider
from listing_optimizer.registry import ProviderRegistry

from conftest import FakeClock, FakeProvider, make_descriptor, make_registry


@pytest.fixture
def abc(clock):
    providers = [
        FakeProvider(make_descriptor("a", 1)),
        FakeProvider(make_descriptor("b", 2)),
        FakeProvider(make_descriptor("c", 3)),
    ]
    return make_registry(*providers, clock=clock)


def test_select_returns_highest_priority(abc):
    for _ in range(3):
        assert abc.select_provider().name() == "a"


def test_descriptors_sorted_by_priority(clock):
    registry = make_registry(
        FakeProvider(make_descriptor("slow", 5)),
        FakeProvider(make_descriptor("fast", 1)),
        clock=clock,
    )
    assert [d.backend_id for d in registry.available_providers()] == ["fast", "slow"]


def test_cooldown_respected_then_restored(abc, clock):
    abc.mark_failed("a", 60)
    assert abc.select_provider().name() == "b"

    clock.advance(59.9)
    assert abc.select_provider().name() == "b"

    clock.advance(0.1)
    assert abc.select_provider().name() == "a"


def test_all_in_cooldown_still_returns_first(abc):
    for backend_id in ("a", "b", "c"):
        abc.mark_failed(backend_id, 60)
    assert abc.select_provider().name() == "a"


def test_next_provider_skips_cooldown_and_exhausts(abc):
    assert abc.next_provider("a").name() == "b"
    abc.mark_failed("b", 60)
    assert abc.next_provider("a").name() == "c"
    assert abc.next_provider("c") is None


def test_next_provider_unknown_backend(abc):
    with pytest.raises(ConfigurationError):
        abc.next_provider("zzz")


def test_mark_failed_never_shortens_cooldown(abc, clock):
    abc.mark_failed("a", 120)
    abc.mark_failed("a", 10)
    assert abc.cooldown_remaining("a") == 120

    abc.mark_failed("a", 300)
    assert abc.cooldown_remaining("a") == 300


def test_concurrent_mark_failed_keeps_longest(abc):
    threads = [
        threading.Thread(target=abc.mark_failed, args=("a", seconds))
        for seconds in range(1, 51)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert abc.cooldown_remaining("a") == 50


def test_prune_cooldowns(abc, clock):
    abc.mark_failed("a", 10)
    abc.mark_failed("b", 100)
    clock.advance(20)
    assert abc.prune_cooldowns() == 1
    assert not abc.is_in_cooldown("a")
    assert abc.is_in_cooldown("b")


def test_missing_credentials_are_excluded(clock):
    provider = FakeProvider(make_descriptor("keyed", 1))
    registry = ProviderRegistry(
        [make_descriptor("blank", 0, api_key="  "), provider.descriptor],
        factory=lambda d: provider,
        clock=clock,
    )
    assert [d.backend_id for d in registry.available_providers()] == ["keyed"]


def test_no_configured_backends_is_an_error():
    with pytest.raises(ConfigurationError):
        ProviderRegistry([make_descriptor("blank", api_key="")], factory=lambda d: None)


def test_duplicate_backend_ids_rejected():
    with pytest.raises(ConfigurationError):
        ProviderRegistry(
            [make_descriptor("a", 1), make_descriptor("a", 2)],
            factory=lambda d: None,
        )


def test_unregistered_provider_type_fails_at_construction():
    descriptor = ProviderDescriptor(backend_id="x", provider_type="does-not-exist", api_key="k")
    with pytest.raises(ConfigurationError, match="Unknown provider type"):
        ProviderRegistry([descriptor])


def test_provider_instances_are_cached(clock):
    built = []

    def factory(descriptor):
        built.append(descriptor.backend_id)
        return FakeProvider(descriptor)

    registry = ProviderRegistry([make_descriptor("a")], factory=factory, clock=clock)
    first = registry.get_provider("a")
    assert registry.get_provider("a") is first
    assert built == ["a"]

    registry.clear_cache()
    assert registry.get_provider("a") is not first
    assert built == ["a", "a"]


def test_default_factory_builds_registered_backend():
    descriptor = ProviderDescriptor(
        backend_id="groq", provider_type="groq", api_key="k", model="llama",
        base_url="https://api.groq.com/openai/v1",
    )
    registry = ProviderRegistry([descriptor], clock=FakeClock())
    provider = registry.select_provider()
    assert isinstance(provider, GroqProvider)
    assert type(create_provider(descriptor)) is GroqProvider


def test_from_environment():
    registry = ProviderRegistry.from_environment(
        {"DEEPSEEK_API_KEY": "d", "GROQ_API_KEY": "g"},
        clock=FakeClock(),
    )
    assert [d.backend_id for d in registry.available_providers()] == ["groq", "deepseek"]

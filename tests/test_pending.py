"""Tests for the pending-generation registry."""

from src.generation.keys import GenerationKey
from src.generation.pending import PendingGenerationRegistry
from src.utilities.config import GenerationVariant


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


KEY = GenerationKey("c1", "m1")


class TestPendingGenerationRegistry:
    def test_register_then_take(self):
        registry = PendingGenerationRegistry()
        registry.register(KEY, "Build a platformer")

        entry = registry.take(KEY)

        assert entry.prompt == "Build a platformer"
        assert entry.variant == GenerationVariant.SIMPLE2
        assert len(registry) == 0

    def test_take_is_one_shot(self):
        registry = PendingGenerationRegistry()
        registry.register(KEY, "Build a platformer")

        assert registry.take(KEY) is not None
        assert registry.take(KEY) is None

    def test_take_missing_key(self):
        assert PendingGenerationRegistry().take(KEY) is None

    def test_register_overwrites(self):
        registry = PendingGenerationRegistry()
        registry.register(KEY, "first")
        registry.register(KEY, "second")

        assert len(registry) == 1
        assert registry.take(KEY).prompt == "second"

    def test_keys_are_composite(self):
        registry = PendingGenerationRegistry()
        registry.register(GenerationKey("c1", "m1"), "a")
        registry.register(GenerationKey("c1", "m2"), "b")
        registry.register(GenerationKey("c2", "m1"), "c")

        assert len(registry) == 3
        assert registry.take(GenerationKey("c2", "m1")).prompt == "c"

    def test_expired_entry_is_absent(self):
        clock = FakeClock()
        registry = PendingGenerationRegistry(ttl=600.0, clock=clock)
        registry.register(KEY, "Build a platformer")

        clock.now += 601
        assert KEY not in registry
        assert registry.take(KEY) is None
        assert len(registry) == 0

    def test_entry_within_ttl_is_present(self):
        clock = FakeClock()
        registry = PendingGenerationRegistry(ttl=600.0, clock=clock)
        registry.register(KEY, "Build a platformer")

        clock.now += 599
        assert KEY in registry
        assert registry.take(KEY) is not None

    def test_purge_expired(self):
        clock = FakeClock()
        registry = PendingGenerationRegistry(ttl=10.0, clock=clock)
        registry.register(GenerationKey("c1", "old"), "old")
        clock.now += 20
        registry.register(GenerationKey("c1", "new"), "new")

        # register already purged the stale entry
        assert len(registry) == 1
        clock.now += 20
        assert registry.purge_expired() == 1
        assert len(registry) == 0

    def test_discard(self):
        registry = PendingGenerationRegistry()
        registry.register(KEY, "Build a platformer")

        registry.discard(KEY)
        registry.discard(KEY)

        assert registry.take(KEY) is None

    def test_discard_conversation(self):
        registry = PendingGenerationRegistry()
        registry.register(GenerationKey("c1", "m1"), "a")
        registry.register(GenerationKey("c1", "m2"), "b")
        registry.register(GenerationKey("c2", "m1"), "c")

        assert registry.discard_conversation("c1") == 2
        assert len(registry) == 1
        assert GenerationKey("c2", "m1") in registry

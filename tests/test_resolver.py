"""
Reference Resolver Tests

Exact id, id prefix and name resolution, ambiguity and interactive picks.
"""

import pytest

from dockrs.core.errors import Ambiguous, Cancelled, ErrorKind, NotFound
from dockrs.core.models import ResourceKind
from dockrs.core.resolver import Resolver, match


# ==============================================================================
# Tier matching
# ==============================================================================

async def test_exact_id(engine):
    resolver = Resolver(engine, ResourceKind.CONTAINER)
    assert await resolver.resolve("abc123") == [engine.handle(ResourceKind.CONTAINER, "abc123")]


async def test_unique_prefix(engine):
    resolver = Resolver(engine, ResourceKind.CONTAINER)
    assert await resolver.resolve("abc") == [engine.handle(ResourceKind.CONTAINER, "abc123")]


async def test_name(engine):
    resolver = Resolver(engine, ResourceKind.CONTAINER)
    assert await resolver.resolve("cache") == [engine.handle(ResourceKind.CONTAINER, "ffe789")]


async def test_ambiguous_prefix_without_selector(engine):
    resolver = Resolver(engine, ResourceKind.CONTAINER)
    with pytest.raises(Ambiguous) as exc_info:
        await resolver.resolve("ab")
    ids = sorted(c.handle.id for c in exc_info.value.candidates)
    assert ids == ["abc123", "abd456"]
    assert exc_info.value.kind == ErrorKind.AMBIGUOUS


async def test_no_match(engine):
    resolver = Resolver(engine, ResourceKind.CONTAINER)
    with pytest.raises(NotFound):
        await resolver.resolve("zzz")


async def test_empty_token_matches_nothing(engine):
    resolver = Resolver(engine, ResourceKind.CONTAINER)
    with pytest.raises(NotFound):
        await resolver.resolve("")


async def test_exact_id_beats_name(engine):
    # A container named like another container's id
    engine.add(ResourceKind.CONTAINER, "999000", "abc123", "running")
    resolver = Resolver(engine, ResourceKind.CONTAINER)
    assert [h.id for h in await resolver.resolve("abc123")] == ["abc123"]


async def test_prefix_beats_name(engine):
    engine.add(ResourceKind.CONTAINER, "777000", "ffe", "running")
    resolver = Resolver(engine, ResourceKind.CONTAINER)
    assert [h.id for h in await resolver.resolve("ffe")] == ["ffe789"]


async def test_resolution_is_stable(engine):
    resolver = Resolver(engine, ResourceKind.CONTAINER)
    first = await resolver.resolve("web")
    second = await Resolver(engine, ResourceKind.CONTAINER).resolve("web")
    assert first == second


async def test_listing_fetched_once(engine):
    resolver = Resolver(engine, ResourceKind.CONTAINER)
    await resolver.resolve("web")
    await resolver.resolve("db")
    assert len(engine.called("list")) == 1


async def test_image_tag_and_digest_forms():
    from dockrs.testing import FakeEngineClient

    fake = FakeEngineClient()
    fake.add(ResourceKind.IMAGE, "sha256:4f1b2c3d4e5f6a7b", "nginx:latest")
    fake.add(ResourceKind.IMAGE, "sha256:9a8b7c6d5e4f3a2b", "redis:7")
    resolver = Resolver(fake, ResourceKind.IMAGE)

    assert [h.id for h in await resolver.resolve("nginx")] == ["sha256:4f1b2c3d4e5f6a7b"]
    assert [h.id for h in await resolver.resolve("4f1b")] == ["sha256:4f1b2c3d4e5f6a7b"]
    assert [h.id for h in await resolver.resolve("redis:7")] == ["sha256:9a8b7c6d5e4f3a2b"]
    with pytest.raises(NotFound):
        await resolver.resolve("redis")


def test_match_flags_exact_and_prefix(engine):
    descriptors = list(engine.resources[ResourceKind.CONTAINER].values())
    assert [c.matched for c in match("abc123", descriptors)] == [True]
    assert [c.matched for c in match("ab", descriptors)] == [False, False]
    assert match("", descriptors) == []


# ==============================================================================
# Interactive resolution
# ==============================================================================

async def test_ambiguous_goes_to_selector(engine, picker):
    selector = picker(1)
    resolver = Resolver(engine, ResourceKind.CONTAINER, selector)

    handles = await resolver.resolve("ab")

    assert [h.id for h in handles] == ["abd456"]
    assert len(selector.calls[0]) == 2
    assert selector.multiple == [True]


async def test_single_target_rejects_multiple_picks(engine, picker):
    resolver = Resolver(engine, ResourceKind.CONTAINER, picker(0, 1))
    with pytest.raises(Ambiguous):
        await resolver.resolve("ab", single=True)


async def test_resolve_one_with_nothing_picked(engine, picker):
    resolver = Resolver(engine, ResourceKind.CONTAINER, picker())
    with pytest.raises(Cancelled):
        await resolver.resolve_one("ab")


async def test_selector_not_used_for_unique_match(engine, picker):
    selector = picker(0)
    resolver = Resolver(engine, ResourceKind.CONTAINER, selector)
    await resolver.resolve("web")
    assert selector.calls == []


async def test_pick_offers_everything(engine, picker):
    selector = picker(0, 2)
    resolver = Resolver(engine, ResourceKind.CONTAINER, selector)
    handles = await resolver.pick()
    assert [h.id for h in handles] == ["abc123", "ffe789"]
    assert len(selector.calls[0]) == 3


async def test_pick_without_selector(engine):
    with pytest.raises(Ambiguous):
        await Resolver(engine, ResourceKind.CONTAINER).pick()


async def test_pick_from_empty_listing():
    from dockrs.testing import FakeEngineClient

    with pytest.raises(NotFound):
        await Resolver(FakeEngineClient(), ResourceKind.VOLUME).pick()


# ==============================================================================
# Resolving many tokens
# ==============================================================================

async def test_resolve_all_collects_failures(engine):
    resolver = Resolver(engine, ResourceKind.CONTAINER)

    handles, failures = await resolver.resolve_all(["abc", "zzz", "web", "ab"])

    assert [h.id for h in handles] == ["abc123"]
    assert [(f.handle.id, f.error_kind) for f in failures] == [
        ("zzz", ErrorKind.NOT_FOUND),
        ("ab", ErrorKind.AMBIGUOUS),
    ]


async def test_resolve_all_without_tokens_picks(engine, picker):
    resolver = Resolver(engine, ResourceKind.CONTAINER, picker(1))
    handles, failures = await resolver.resolve_all([])
    assert [h.id for h in handles] == ["abd456"]
    assert failures == []


async def test_resolve_all_propagates_cancel(engine):
    async def cancelling(candidates, multiple):
        raise Cancelled()

    resolver = Resolver(engine, ResourceKind.CONTAINER, cancelling)
    with pytest.raises(Cancelled):
        await resolver.resolve_all(["ab"])

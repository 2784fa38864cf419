"""Tests for the engine: fan-out, deadline, failure isolation, caching, stats."""

import asyncio

import pytest

from conftest import NOW, TENANT, Order, product, run
from shopreco.core.config import Settings
from shopreco.domain.models.reco import StrategyConfig, StrategyName
from shopreco.domain.services.co_occurrence_svc import CoOccurrenceStrategy
from shopreco.domain.services.engine import RecommendationEngine
from shopreco.domain.services.strategy import Strategy
from shopreco.domain.services.trending_svc import TrendingStrategy


class SlowTrending(TrendingStrategy):
    async def _compute(self, ctx, config):
        await asyncio.sleep(5)
        return await super()._compute(ctx, config)


class BrokenCoOccurrence(CoOccurrenceStrategy):
    async def score(self, ctx, config):
        raise RuntimeError("boom")


def _deps(engine):
    return engine.store, engine.cache, engine.settings, engine.profiles, engine.clock


@pytest.fixture
def shop(store):
    store.add_products(
        product("P1", category_id="shirts"),
        product("P2", category_id="shirts"),
        product("P3", category_id="pants"),
        product("P4", category_id="pants"),
    )
    store.add_orders(
        Order("o1", ["P1", "P2"], user_id="u1"),
        Order("o2", ["P1", "P3"]),
        Order("o3", ["P1", "P2", "P4"]),
        Order("o4", ["P3"]),
    )
    return store


def test_single_strategy_at_full_weight_matches_direct_call(uncached_engine, shop):
    direct = run(uncached_engine.get_frequently_bought_together(TENANT, "P1", 5))
    combined = run(uncached_engine.get_combined_recommendations(
        TENANT,
        product_id="P1",
        limit=5,
        strategies=[StrategyConfig(name=StrategyName.CO_OCCURRENCE, weight=1.0)],
    ))

    assert [(s.product_id, s.score) for s in combined] == [(s.product_id, s.score) for s in direct]
    assert direct


def test_combined_is_idempotent(engine, shop):
    first = run(engine.get_combined_recommendations(TENANT, user_id="u1", product_id="P1", limit=5))
    second = run(engine.get_combined_recommendations(TENANT, user_id="u1", product_id="P1", limit=5))

    assert first == second
    assert first


def test_combined_never_returns_focal_product(engine, shop):
    # P1 leads trending, but it is the product being viewed
    assert "P1" in {s.product_id for s in run(engine.get_trending_products(TENANT, 10))}

    result = run(engine.get_combined_recommendations(TENANT, product_id="P1", limit=10))

    assert result
    assert "P1" not in {s.product_id for s in result}


def test_strategies_without_context_are_skipped(engine, shop, store):
    result = run(engine.get_combined_recommendations(TENANT, limit=5))

    assert {s.strategy for s in result} == {"trending"}
    assert store.calls["find_orders_containing"] == 0
    assert store.calls["find_user_order_history"] == 0


def test_deadline_returns_partial_results(store, shop):
    engine = RecommendationEngine(
        store=store, redis=None, settings=Settings(reco_deadline_s=0.1), clock=lambda: NOW
    )
    engine.register(SlowTrending(*_deps(engine)))
    strategies = [
        StrategyConfig(name=StrategyName.CO_OCCURRENCE, weight=1.0),
        StrategyConfig(name=StrategyName.TRENDING, weight=1.0),
    ]

    result = run(engine.get_combined_recommendations(TENANT, product_id="P1", limit=5, strategies=strategies))

    assert {s.strategy for s in result} == {"co-occurrence"}
    assert engine.get_stats().deadline_overruns == 1


def test_failing_strategy_is_left_out(engine, shop):
    engine.register(BrokenCoOccurrence(*_deps(engine)))

    result = run(engine.get_combined_recommendations(TENANT, product_id="P1", limit=5))

    assert result
    assert "co-occurrence" not in {s.strategy for s in result}
    assert engine.get_stats().strategy_failures["co-occurrence"] == 1


def test_store_outage_gives_empty_result(engine, shop, store):
    store.fail = True

    assert run(engine.get_combined_recommendations(TENANT, user_id="u1", product_id="P1")) == []
    stats = engine.get_stats()
    assert stats.strategy_failures["trending"] == 1
    assert stats.strategy_failures["co-occurrence"] == 1


def test_duplicate_strategy_config_keeps_first(uncached_engine, shop):
    direct = run(uncached_engine.get_trending_products(TENANT, 5))
    combined = run(uncached_engine.get_combined_recommendations(
        TENANT,
        limit=5,
        strategies=[
            StrategyConfig(name=StrategyName.TRENDING, weight=1.0),
            StrategyConfig(name=StrategyName.TRENDING, weight=0.0),
        ],
    ))

    assert [s.score for s in combined] == [s.score for s in direct]


def test_cache_hit_skips_the_store(engine, shop, store):
    first = run(engine.get_trending_products(TENANT, 5))
    second = run(engine.get_trending_products(TENANT, 5))

    assert first == second
    assert store.calls["find_interactions_in_window"] == 1


def test_cache_key_depends_on_params_and_limit(engine, shop, store, redis):
    run(engine.get_trending_products(TENANT, 5))
    run(engine.get_trending_products(TENANT, 3))
    run(engine.get_trending_products(TENANT, 5, window_days=7))

    assert store.calls["find_interactions_in_window"] == 3
    assert len([k for k in redis.data if k.startswith(f"reco:trending:{TENANT}:-:")]) == 3


def test_cache_ttls_per_strategy(engine, shop, redis):
    async def scenario():
        await engine.record_view("u1", "P1")
        await engine.get_combined_recommendations(TENANT, user_id="u1", product_id="P1")

    run(scenario())

    ttls = {key.split(":")[1]: ttl for key, ttl in redis.ttls.items()}
    assert ttls == {
        "co-occurrence": 3600,
        "content-similarity": 7200,
        "trending": 3600,
        "personalized": 1800,
    }


def test_cache_outage_is_not_fatal(engine, uncached_engine, shop, redis):
    expected = run(uncached_engine.get_combined_recommendations(TENANT, user_id="u1", product_id="P1"))
    redis.fail_get = True
    redis.fail_set = True

    assert run(engine.get_combined_recommendations(TENANT, user_id="u1", product_id="P1")) == expected
    assert redis.data == {}


def test_corrupt_cache_entry_reads_as_miss(engine, shop, redis, store):
    run(engine.get_trending_products(TENANT, 5))
    for key in redis.data:
        redis.data[key] = "{not json"

    assert run(engine.get_trending_products(TENANT, 5))
    assert store.calls["find_interactions_in_window"] == 2


def test_stats_track_users_and_requests(engine, shop):
    async def scenario():
        await engine.record_view("u1", "P1")
        await engine.record_purchase("u2", "P2", "shirts")
        await engine.get_combined_recommendations(TENANT, limit=3)
        await engine.get_combined_recommendations(TENANT, user_id="u1", limit=3)

    run(scenario())
    stats = engine.get_stats()

    assert stats.total_users == 2
    assert stats.combined_requests == 2
    assert stats.deadline_overruns == 0
    assert set(stats.strategy_failures) == {"co-occurrence", "content-similarity", "trending", "personalized"}


def test_large_limits_are_served_not_rejected(uncached_engine, shop):
    async def scenario():
        await uncached_engine.record_view("u1", "P1")
        return [
            await uncached_engine.get_frequently_bought_together(TENANT, "P1", 150),
            await uncached_engine.get_similar_products(TENANT, "P1", 150),
            await uncached_engine.get_similar_to_recent_views(TENANT, "u1", 150),
            await uncached_engine.get_trending_products(TENANT, 150),
            await uncached_engine.get_personalized_recommendations(TENANT, "u1", 150),
            await uncached_engine.get_combined_recommendations(TENANT, user_id="u1", product_id="P1", limit=150),
        ]

    fbt, similar, views, trending, personalized, combined = run(scenario())

    assert [s.product_id for s in fbt] == ["P2", "P3", "P4"]
    assert [s.product_id for s in trending] == ["P1", "P2", "P3", "P4"]
    assert isinstance(similar, list) and isinstance(views, list) and isinstance(personalized, list)
    assert {s.product_id for s in combined} == {"P2", "P3", "P4"}


def test_non_positive_limit_returns_nothing(uncached_engine, shop, store):
    async def scenario():
        return [
            await uncached_engine.get_frequently_bought_together(TENANT, "P1", 0),
            await uncached_engine.get_trending_products(TENANT, -3),
            await uncached_engine.get_personalized_recommendations(TENANT, "u1", 0),
            await uncached_engine.get_combined_recommendations(TENANT, product_id="P1", limit=0),
        ]

    assert run(scenario()) == [[], [], [], []]
    assert sum(store.calls.values()) == 0
    assert uncached_engine.get_stats().combined_requests == 0


def test_combined_without_limit_uses_default(uncached_engine, store):
    store.add_products(*[product(f"X{i:02d}") for i in range(20)])
    store.add_orders(*[Order(f"o{i}", [f"X{i:02d}"]) for i in range(20)])

    result = run(uncached_engine.get_combined_recommendations(TENANT))

    assert len(result) == uncached_engine.settings.default_limit


def test_incomplete_strategy_fails_at_construction(engine):
    class NoCompute(Strategy):
        name = StrategyName.TRENDING

        @property
        def ttl(self):
            return 60

        def applies(self, ctx):
            return True

        def context_id(self, ctx):
            return "-"

    with pytest.raises(TypeError):
        NoCompute(*_deps(engine))

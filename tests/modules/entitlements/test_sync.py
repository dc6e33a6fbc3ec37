"""Tests for client-side entitlement sync."""

from unittest.mock import AsyncMock

import pytest

from modules.entitlements.models import DenialReason, FeatureKey, SubscriptionTier
from modules.entitlements.sync import EntitlementSync
from tests.conftest import make_entitlement


class TestEntitlementSyncSnapshots:
    @pytest.fixture
    def sync(self, store):
        return EntitlementSync(store)

    def test_fails_closed_before_loading(self, sync):
        decision = sync.evaluate(FeatureKey.SUMMARIES)
        assert decision.reason == DenialReason.CONFIG_UNAVAILABLE
        assert not sync.can_use(FeatureKey.SUMMARIES)

    def test_missing_snapshot_fails_closed(self, sync, config):
        sync.receive_config(config)
        assert sync.evaluate(FeatureKey.SUMMARIES).reason == DenialReason.NOT_LOADED

    def test_missing_config_fails_closed(self, sync):
        sync.receive_snapshot(make_entitlement("u1"))
        assert sync.evaluate(FeatureKey.SUMMARIES).reason == DenialReason.CONFIG_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_attach_receives_store_writes(self, sync, store, config):
        sync.attach("u1")
        await store.create_user(make_entitlement("u1"))
        await store.update_user("u1", {"subscription_tier": SubscriptionTier.GOLD})
        await store.set_config(config)

        assert sync.entitlement.subscription_tier == SubscriptionTier.GOLD
        assert sync.config == config

    @pytest.mark.asyncio
    async def test_detach_stops_updates_and_clears_state(self, sync, store):
        sync.attach("u1")
        await store.create_user(make_entitlement("u1"))
        sync.detach()

        await store.update_user("u1", {"credits": 1})

        assert sync.entitlement is None
        assert sync.config is None

    def test_incoming_snapshot_replaces_local(self, sync):
        sync.receive_snapshot(make_entitlement("u1", credits=40, version=5))
        sync.receive_snapshot(make_entitlement("u1", credits=90, version=2))
        assert sync.entitlement.credits == 90


async def load_sync(store, config) -> EntitlementSync:
    """Sync attached to u1 with its snapshot and the config loaded."""
    await store.create_user(make_entitlement("u1", credits=50))
    sync = EntitlementSync(store)
    sync.attach("u1")
    sync.receive_snapshot(await store.get_user("u1"))
    sync.receive_config(config)
    return sync


class TestEntitlementSyncConsume:
    @pytest.mark.asyncio
    async def test_consume_applies_locally_then_persists(self, store, config):
        loaded = await load_sync(store, config)
        delta = loaded.consume(FeatureKey.QUIZ_QUESTIONS, 3)

        assert delta.usage.counters == {FeatureKey.QUIZ_QUESTIONS: 3}
        assert loaded.entitlement.usage.counters == {FeatureKey.QUIZ_QUESTIONS: 3}
        assert loaded.pending_writes == 2

        await loaded.drain()

        stored = await store.get_user("u1")
        assert stored.usage.counters == {FeatureKey.QUIZ_QUESTIONS: 3}
        assert loaded.entitlement == stored
        assert loaded.pending_writes == 0
        records = await store.list_activity()
        assert [(r.feature, r.amount) for r in records] == [(FeatureKey.QUIZ_QUESTIONS, 3)]

    @pytest.mark.asyncio
    async def test_consume_credits(self, store, config):
        loaded = await load_sync(store, config)
        loaded.consume(FeatureKey.VISUAL_ASSISTANT)
        assert loaded.entitlement.credits == 40

        await loaded.drain()
        assert (await store.get_user("u1")).credits == 40

    @pytest.mark.asyncio
    async def test_consume_uses_given_snapshot(self, store, config):
        loaded = await load_sync(store, config)
        before = loaded.entitlement
        loaded.receive_snapshot(before.model_copy(update={"credits": 0}))

        delta = loaded.consume(FeatureKey.VISUAL_ASSISTANT, snapshot=before)

        assert delta.credits == 40
        await loaded.drain()

    @pytest.mark.asyncio
    async def test_unmetered_consume_only_logs(self, store, config):
        loaded = await load_sync(store, config)
        delta = loaded.consume(FeatureKey.SUMMARIES)

        assert delta.is_empty
        await loaded.drain()
        assert (await store.get_user("u1")).version == 0
        assert len(await store.list_activity()) == 1

    @pytest.mark.asyncio
    async def test_activity_logging_can_be_disabled(self, store, config):
        await store.create_user(make_entitlement("u1"))
        sync = EntitlementSync(store, log_activity=False)
        sync.receive_snapshot(await store.get_user("u1"))
        sync.receive_config(config)

        sync.consume(FeatureKey.SUMMARIES)
        await sync.drain()

        assert await store.list_activity() == []

    @pytest.mark.asyncio
    async def test_persist_failure_is_logged_not_raised(self, store, config, caplog):
        loaded = await load_sync(store, config)
        store.update_user = AsyncMock(side_effect=RuntimeError("offline"))

        loaded.consume(FeatureKey.QUIZ_QUESTIONS)
        await loaded.drain()

        assert loaded.entitlement.usage.counters == {FeatureKey.QUIZ_QUESTIONS: 1}
        assert "Failed to persist usage" in caplog.text

    @pytest.mark.asyncio
    async def test_consume_without_snapshot_is_ignored(self, store, config):
        sync = EntitlementSync(store)
        sync.receive_config(config)

        delta = sync.consume(FeatureKey.QUIZ_QUESTIONS)

        assert delta.is_empty
        assert sync.pending_writes == 0


class TestEntitlementSyncTier:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("tier", list(SubscriptionTier))
    async def test_consuming_every_feature_keeps_tier(self, store, config, tier):
        await store.create_user(make_entitlement("u1", tier=tier, credits=1000, is_admin=True))
        sync = EntitlementSync(store)
        sync.attach("u1")
        sync.receive_snapshot(await store.get_user("u1"))
        sync.receive_config(config)

        for feature in FeatureKey:
            sync.consume(feature)
            assert sync.entitlement.subscription_tier == tier
        await sync.drain()

        assert (await store.get_user("u1")).subscription_tier == tier

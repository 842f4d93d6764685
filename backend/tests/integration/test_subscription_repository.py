"""
Integration tests for the subscription repository against SQLite.

Verifies:
- Insert and reload round trip
- Compare-and-swap writes reject stale versions
- Conditional usage increment never passes the quota
"""

from datetime import datetime, timezone

import pytest

from app.domain.plans import PlanTier
from app.domain.subscription import Subscription, SubscriptionStatus
from app.infrastructure.exceptions import ConcurrentModificationError


STARTED = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def new_subscription(user_id, tier=PlanTier.BASIC, quota=10, used=0) -> Subscription:
    return Subscription(
        user_id=user_id,
        tier=tier,
        monthly_quota=quota,
        conversions_used=used,
        cycle_started_at=STARTED,
        created_at=STARTED,
        external_ref="sub_abc",
    )


class TestSubscriptionRepository:

    @pytest.mark.asyncio
    async def test_insert_and_reload(self, session, subscription_repo, make_user):
        auth = await make_user()

        stored = await subscription_repo.write(new_subscription(auth.user_id), None)
        await session.commit()
        loaded = await subscription_repo.get_by_user_id(auth.user_id)

        assert stored.id is not None
        assert loaded.id == stored.id
        assert loaded.version == 1
        assert loaded.tier == PlanTier.BASIC
        assert loaded.status == SubscriptionStatus.ACTIVE
        assert loaded.cycle_started_at == STARTED
        assert loaded.cycle_started_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_lookup_by_external_ref(self, session, subscription_repo, make_user):
        auth = await make_user()
        await subscription_repo.write(new_subscription(auth.user_id), None)
        await session.commit()

        found = await subscription_repo.get_by_external_ref("sub_abc")

        assert found.user_id == auth.user_id
        assert await subscription_repo.get_by_external_ref("sub_missing") is None

    @pytest.mark.asyncio
    async def test_second_insert_for_same_user_conflicts(self, session, subscription_repo, make_user):
        auth = await make_user()
        await subscription_repo.write(new_subscription(auth.user_id), None)
        await session.commit()

        with pytest.raises(ConcurrentModificationError):
            await subscription_repo.write(new_subscription(auth.user_id, PlanTier.PRO), None)
        await session.rollback()

    @pytest.mark.asyncio
    async def test_cas_write_bumps_version(self, session, subscription_repo, make_user):
        auth = await make_user()
        stored = await subscription_repo.write(new_subscription(auth.user_id), None)
        await session.commit()

        changed = stored.model_copy(update={"tier": PlanTier.STANDARD, "monthly_quota": 20})
        written = await subscription_repo.write(changed, stored.version)
        await session.commit()

        assert written.version == 2
        reloaded = await subscription_repo.get_by_user_id(auth.user_id)
        assert reloaded.tier == PlanTier.STANDARD
        assert reloaded.version == 2

    @pytest.mark.asyncio
    async def test_stale_cas_write_is_rejected(self, session, subscription_repo, make_user):
        auth = await make_user()
        stale = await subscription_repo.write(new_subscription(auth.user_id), None)
        await session.commit()

        # A concurrent consumer moves the row on.
        assert await subscription_repo.try_increment_usage(stale.id)
        await session.commit()

        with pytest.raises(ConcurrentModificationError):
            await subscription_repo.write(
                stale.model_copy(update={"tier": PlanTier.PRO}), stale.version
            )
        await session.rollback()

        current = await subscription_repo.get_by_user_id(auth.user_id)
        assert current.tier == PlanTier.BASIC
        assert current.conversions_used == 1

    @pytest.mark.asyncio
    async def test_increment_stops_at_quota(self, session, subscription_repo, make_user):
        auth = await make_user()
        stored = await subscription_repo.write(
            new_subscription(auth.user_id, quota=10, used=8), None
        )
        await session.commit()

        results = [await subscription_repo.try_increment_usage(stored.id) for _ in range(5)]
        await session.commit()

        assert results == [True, True, False, False, False]
        reloaded = await subscription_repo.get_by_user_id(auth.user_id)
        assert reloaded.conversions_used == 10

    @pytest.mark.asyncio
    async def test_increment_refused_when_canceled(self, session, subscription_repo, make_user):
        auth = await make_user()
        stored = await subscription_repo.write(new_subscription(auth.user_id), None)
        await session.commit()
        await subscription_repo.write(
            stored.model_copy(
                update={"status": SubscriptionStatus.CANCELED, "ended_at": STARTED}
            ),
            stored.version,
        )
        await session.commit()

        assert await subscription_repo.try_increment_usage(stored.id) is False

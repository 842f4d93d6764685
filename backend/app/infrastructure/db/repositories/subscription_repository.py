"""
Subscription Repository

Data access layer for subscription persistence.
Writes are compare-and-swap on the `version` column; the usage counter is a
single conditional UPDATE so concurrent consumers can never over-count.
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.plans import PlanTier
from app.domain.subscription import Subscription, SubscriptionStatus
from app.domain.usage import ensure_utc, utc_now
from app.infrastructure.db.models.subscription import SubscriptionModel
from app.infrastructure.exceptions import ConcurrentModificationError


logger = logging.getLogger(__name__)


class SubscriptionRepository:
    """
    Repository for subscription data access.

    Operates on the request-scoped session it is given and never commits;
    the subscription service owns the unit of work.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    # =========================================================================
    # Query Methods
    # =========================================================================

    async def get_by_user_id(self, user_id: UUID) -> Optional[Subscription]:
        """
        Get the current subscription row for a user.

        Always reloads from the database so a retry after a failed
        compare-and-swap sees the winning write.
        """
        statement = (
            select(SubscriptionModel)
            .where(SubscriptionModel.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(statement)
        model = result.scalar_one_or_none()

        if model:
            return self._to_domain(model)

        return None

    async def get_by_external_ref(self, external_ref: str) -> Optional[Subscription]:
        """Get subscription by Stripe subscription ID."""
        statement = (
            select(SubscriptionModel)
            .where(SubscriptionModel.external_ref == external_ref)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(statement)
        model = result.scalars().first()

        if model:
            return self._to_domain(model)

        return None

    # =========================================================================
    # Command Methods
    # =========================================================================

    async def write(
        self,
        subscription: Subscription,
        expected_version: Optional[int],
    ) -> Subscription:
        """
        Persist a subscription value.

        Args:
            subscription: New subscription state
            expected_version: Version read before the change, or None when
                no row existed (insert)

        Returns:
            The stored subscription with its new version

        Raises:
            ConcurrentModificationError: Another writer got there first
        """
        now = utc_now()

        if expected_version is None:
            model = self._to_model(subscription)
            model.id = uuid4()
            model.version = 1
            model.created_at = subscription.created_at or now
            model.updated_at = now

            self._session.add(model)
            try:
                await self._session.flush()
            except IntegrityError as e:
                raise ConcurrentModificationError(
                    user_id=subscription.user_id,
                    expected_version=None,
                ) from e

            logger.info(f"Created subscription {model.id} for user {model.user_id}")
            return self._to_domain(model)

        statement = (
            update(SubscriptionModel)
            .where(
                SubscriptionModel.id == subscription.id,
                SubscriptionModel.version == expected_version,
            )
            .values(
                tier=subscription.tier.value,
                status=subscription.status.value,
                monthly_quota=subscription.monthly_quota,
                conversions_used=subscription.conversions_used,
                cycle_started_at=subscription.cycle_started_at,
                external_ref=subscription.external_ref,
                ended_at=subscription.ended_at,
                updated_at=now,
                version=expected_version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(statement)

        if result.rowcount != 1:
            raise ConcurrentModificationError(
                user_id=subscription.user_id,
                expected_version=expected_version,
            )

        return subscription.model_copy(
            update={"version": expected_version + 1, "updated_at": now}
        )

    async def try_increment_usage(self, subscription_id: UUID) -> bool:
        """
        Atomically count one conversion.

        Returns:
            False when the row is no longer active or its quota is used up
        """
        statement = (
            update(SubscriptionModel)
            .where(
                SubscriptionModel.id == subscription_id,
                SubscriptionModel.status == SubscriptionStatus.ACTIVE.value,
                SubscriptionModel.conversions_used < SubscriptionModel.monthly_quota,
            )
            .values(
                conversions_used=SubscriptionModel.conversions_used + 1,
                version=SubscriptionModel.version + 1,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(statement)
        return result.rowcount == 1

    # =========================================================================
    # Mapping Methods
    # =========================================================================

    def _to_domain(self, model: SubscriptionModel) -> Subscription:
        """Convert database model to domain entity."""
        return Subscription(
            id=model.id,
            user_id=model.user_id,
            tier=PlanTier(model.tier),
            status=SubscriptionStatus(model.status),
            monthly_quota=model.monthly_quota,
            conversions_used=model.conversions_used or 0,
            cycle_started_at=ensure_utc(model.cycle_started_at),
            external_ref=model.external_ref,
            created_at=ensure_utc(model.created_at) if model.created_at else None,
            ended_at=ensure_utc(model.ended_at) if model.ended_at else None,
            updated_at=ensure_utc(model.updated_at) if model.updated_at else None,
            version=model.version,
        )

    def _to_model(self, domain: Subscription) -> SubscriptionModel:
        """Convert domain entity to database model."""
        return SubscriptionModel(
            user_id=domain.user_id,
            tier=domain.tier.value,
            status=domain.status.value,
            monthly_quota=domain.monthly_quota,
            conversions_used=domain.conversions_used,
            cycle_started_at=domain.cycle_started_at,
            external_ref=domain.external_ref,
            ended_at=domain.ended_at,
        )

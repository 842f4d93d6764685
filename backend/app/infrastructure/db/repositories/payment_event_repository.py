"""
Processed Payment Event Repository

Replay ledger for the payment event adapter.
"""

from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.payment_event import ProcessedPaymentEvent


class PaymentEventRepository:
    """Records which external billing references were already applied."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def is_processed(self, external_ref: str) -> bool:
        return await self._session.get(ProcessedPaymentEvent, external_ref) is not None

    async def claim(
        self,
        external_ref: str,
        event_type: str,
        user_id: Optional[UUID] = None,
        tier: Optional[str] = None,
    ) -> bool:
        """
        Insert the ledger row for an event.

        Returns:
            False if another delivery of the same event claimed it first.
            The session is rolled back in that case.
        """
        self._session.add(
            ProcessedPaymentEvent(
                external_ref=external_ref,
                event_type=event_type,
                user_id=user_id,
                tier=tier,
            )
        )
        try:
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            return False
        return True

"""Referral commission side effects triggered by bets."""

import logging
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database.session import get_db_session
from models import CommissionEarning, CommissionKind, TransactionType
from services.ledger_service import LedgerService, ledger_service
from utils.errors import CommissionHookFailure, LedgerInvariantError
from utils.money import percent_of, quantize_money

logger = logging.getLogger(__name__)


class CommissionHook(Protocol):
    """
    Best-effort commission side channel.

    Both calls must be idempotent on ``bet_id``: a retried settlement can
    invoke them again for the same bet.
    """

    async def on_first_bet(self, user_id: UUID, bet_id: UUID, stake_amount: Decimal) -> None:
        ...

    async def on_bet_lost(self, user_id: UUID, bet_id: UUID, stake_amount: Decimal) -> None:
        ...


class NoopCommissionHook:
    """Hook used when no referral program is configured."""

    async def on_first_bet(self, user_id: UUID, bet_id: UUID, stake_amount: Decimal) -> None:
        return None

    async def on_bet_lost(self, user_id: UUID, bet_id: UUID, stake_amount: Decimal) -> None:
        return None


@dataclass(frozen=True)
class Referrer:
    """Who referred a user and on what terms."""
    user_id: UUID
    is_influencer: bool = False
    commission_percent: Decimal = Decimal("0")


ReferrerLookup = Callable[[UUID], Awaitable[Optional[Referrer]]]
SessionScope = Callable[[], AbstractAsyncContextManager[AsyncSession]]


class ReferralCommissionHook:
    """
    Credits referrers from bets placed by the users they referred.

    - A regular referrer earns a one-off bonus on the referred user's first
      stake.
    - An influencer earns their own percentage of every losing stake and no
      first-bet bonus.

    Referral relationships live outside this service and are resolved through
    ``referrer_lookup``. Every payment is recorded in ``commission_earnings``
    under a unique (bet_id, kind) key, so a repeated call is skipped.
    """

    def __init__(
        self,
        referrer_lookup: ReferrerLookup,
        ledger: LedgerService = ledger_service,
        session_scope: SessionScope = get_db_session,
        first_bet_bonus_percent: Optional[Decimal] = None,
    ):
        self.referrer_lookup = referrer_lookup
        self.ledger = ledger
        self.session_scope = session_scope
        self.first_bet_bonus_percent = (
            first_bet_bonus_percent
            if first_bet_bonus_percent is not None
            else settings.first_bet_bonus_percent
        )

    async def on_first_bet(self, user_id: UUID, bet_id: UUID, stake_amount: Decimal) -> None:
        referrer = await self._lookup(user_id)
        if referrer is None or referrer.is_influencer:
            return
        await self._pay(
            CommissionKind.FIRST_BET, referrer, user_id, bet_id,
            stake_amount, self.first_bet_bonus_percent,
        )

    async def on_bet_lost(self, user_id: UUID, bet_id: UUID, stake_amount: Decimal) -> None:
        referrer = await self._lookup(user_id)
        if referrer is None or not referrer.is_influencer:
            return
        await self._pay(
            CommissionKind.LOSS, referrer, user_id, bet_id,
            stake_amount, referrer.commission_percent,
        )

    async def _lookup(self, user_id: UUID) -> Optional[Referrer]:
        try:
            return await self.referrer_lookup(user_id)
        except Exception as e:
            raise CommissionHookFailure(f"Referrer lookup for {user_id} failed: {e}") from e

    async def _pay(
        self,
        kind: str,
        referrer: Referrer,
        user_id: UUID,
        bet_id: UUID,
        base_amount: Decimal,
        percent: Decimal,
    ) -> None:
        amount = quantize_money(percent_of(base_amount, percent))
        if amount <= 0:
            return

        try:
            async with self.session_scope() as db:
                existing = await db.execute(
                    select(CommissionEarning.id)
                    .where(CommissionEarning.bet_id == bet_id)
                    .where(CommissionEarning.kind == kind)
                )
                if existing.scalar_one_or_none() is not None:
                    logger.info(f"Commission {kind} for bet {bet_id} already paid, skipping")
                    return

                db.add(CommissionEarning(
                    bet_id=bet_id,
                    kind=kind,
                    referrer_id=referrer.user_id,
                    user_id=user_id,
                    base_amount=base_amount,
                    percent=percent,
                    amount=amount,
                ))
                await self.ledger.credit(
                    db,
                    referrer.user_id,
                    amount,
                    reason=f"Referral {kind.replace('_', ' ')} commission",
                    transaction_type=TransactionType.COMMISSION,
                    bet_id=bet_id,
                )
                await db.commit()
        except IntegrityError:
            logger.info(f"Commission {kind} for bet {bet_id} recorded concurrently, skipping")
            return
        except (SQLAlchemyError, LedgerInvariantError) as e:
            raise CommissionHookFailure(f"Commission {kind} for bet {bet_id} failed: {e}") from e

        logger.info(f"Paid {kind} commission ${amount} to {referrer.user_id} for bet {bet_id}")

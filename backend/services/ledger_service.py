"""Wallet ledger primitives."""

import logging
from decimal import Decimal
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import TransactionType, Wallet, WalletTransaction
from utils.errors import InsufficientFunds, LedgerInvariantError
from utils.money import ZERO, quantize_money, to_decimal

logger = logging.getLogger(__name__)


class LedgerService:
    """
    Per-user balance store.

    ``balance`` holds spendable plus locked funds and ``locked_balance`` the
    stakes of the user's pending bets. Placing a bet removes the full amount
    from the spendable part: the fee leaves ``balance`` and the stake moves
    into ``locked_balance``. Settlement releases the stake and credits any
    payout.

    None of the methods commit. They run inside the caller's transaction so a
    fund movement is never visible without the bet or round change behind it.
    """

    async def get_wallet(
        self,
        db: AsyncSession,
        user_id: UUID,
        for_update: bool = False,
    ) -> Optional[Wallet]:
        """Get a user's wallet, optionally row-locked."""
        query = select(Wallet).where(Wallet.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_or_create_wallet(self, db: AsyncSession, user_id: UUID) -> Wallet:
        """Get a user's wallet row-locked, creating an empty one if needed."""
        wallet = await self.get_wallet(db, user_id, for_update=True)
        if wallet is None:
            wallet = Wallet(
                user_id=user_id,
                balance=ZERO,
                locked_balance=ZERO,
                total_won=ZERO,
                total_lost=ZERO,
                total_wagered=ZERO,
                total_deposited=ZERO,
            )
            db.add(wallet)
            await db.flush()
            logger.info(f"Created wallet for user {user_id}")
        return wallet

    async def available(self, db: AsyncSession, user_id: UUID) -> Decimal:
        """Funds that can be staked or withdrawn right now."""
        wallet = await self.get_wallet(db, user_id)
        if wallet is None:
            return ZERO
        return wallet.available

    async def lock(
        self,
        db: AsyncSession,
        user_id: UUID,
        amount: Decimal,
        stake_amount: Decimal,
        bet_id: Optional[UUID] = None,
        round_id: Optional[UUID] = None,
    ) -> Wallet:
        """
        Debit a bet from the spendable balance.

        The fee (``amount - stake_amount``) leaves the wallet immediately and
        the stake is tracked in ``locked_balance`` until settlement.

        Raises:
            InsufficientFunds: available balance is below ``amount``
        """
        amount = to_decimal(amount)
        stake_amount = to_decimal(stake_amount)
        if stake_amount < 0 or stake_amount > amount:
            raise LedgerInvariantError(
                f"Stake {stake_amount} must lie within the bet amount {amount}"
            )

        wallet = await self.get_wallet(db, user_id, for_update=True)
        available = wallet.available if wallet is not None else ZERO
        if wallet is None or available < amount:
            raise InsufficientFunds(
                f"Insufficient balance: available {available}, required {amount}"
            )

        before = wallet.available
        wallet.balance -= amount - stake_amount
        wallet.locked_balance += stake_amount
        wallet.total_wagered += amount
        self._check(wallet)
        self._record(
            db, wallet, TransactionType.BET_PLACE, -amount, before,
            bet_id=bet_id, round_id=round_id,
            description=f"Bet placed (stake {stake_amount}, fee {amount - stake_amount})",
        )
        return wallet

    async def settle_win(
        self,
        db: AsyncSession,
        user_id: UUID,
        stake_amount: Decimal,
        payout: Decimal,
        bet_id: Optional[UUID] = None,
        round_id: Optional[UUID] = None,
    ) -> Wallet:
        """Release a winning stake and credit its payout to the spendable balance."""
        payout = quantize_money(to_decimal(payout))
        wallet = await self._locked_wallet(db, user_id)

        before = wallet.available
        wallet.balance += payout - stake_amount
        wallet.locked_balance -= stake_amount
        wallet.total_won += payout
        self._check(wallet)
        self._record(
            db, wallet, TransactionType.BET_WIN, payout, before,
            bet_id=bet_id, round_id=round_id, description="Bet won",
        )
        return wallet

    async def settle_loss(
        self,
        db: AsyncSession,
        user_id: UUID,
        stake_amount: Decimal,
        total_amount: Decimal,
        bet_id: Optional[UUID] = None,
        round_id: Optional[UUID] = None,
    ) -> Wallet:
        """Forfeit a losing stake. The spendable balance does not change."""
        wallet = await self._locked_wallet(db, user_id)

        before = wallet.available
        wallet.balance -= stake_amount
        wallet.locked_balance -= stake_amount
        wallet.total_lost += total_amount
        self._check(wallet)
        self._record(
            db, wallet, TransactionType.BET_LOSS, ZERO, before,
            bet_id=bet_id, round_id=round_id,
            description=f"Bet lost (forfeited {total_amount})",
        )
        return wallet

    async def refund(
        self,
        db: AsyncSession,
        user_id: UUID,
        stake_amount: Decimal,
        total_amount: Decimal,
        bet_id: Optional[UUID] = None,
        round_id: Optional[UUID] = None,
        reason: str = "Bet refunded",
    ) -> Wallet:
        """Return the full bet amount, fee included, to the spendable balance."""
        wallet = await self._locked_wallet(db, user_id)

        before = wallet.available
        wallet.balance += total_amount - stake_amount
        wallet.locked_balance -= stake_amount
        self._check(wallet)
        self._record(
            db, wallet, TransactionType.REFUND, total_amount, before,
            bet_id=bet_id, round_id=round_id, description=reason,
        )
        return wallet

    async def credit(
        self,
        db: AsyncSession,
        user_id: UUID,
        amount: Decimal,
        reason: str,
        transaction_type: str = TransactionType.CREDIT,
        bet_id: Optional[UUID] = None,
    ) -> Wallet:
        """Add funds to a wallet (administrative top-up or commission)."""
        amount = quantize_money(to_decimal(amount))
        if amount <= 0:
            raise LedgerInvariantError(f"Credit amount must be positive, got {amount}")

        wallet = await self.get_or_create_wallet(db, user_id)
        before = wallet.available
        wallet.balance += amount
        if transaction_type == TransactionType.CREDIT:
            wallet.total_deposited += amount
        self._check(wallet)
        self._record(
            db, wallet, transaction_type, amount, before,
            bet_id=bet_id, description=reason,
        )
        return wallet

    async def get_transactions(
        self,
        db: AsyncSession,
        user_id: UUID,
        limit: int = 50,
        offset: int = 0,
    ) -> list[WalletTransaction]:
        """Get a user's ledger history, newest first."""
        result = await db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.user_id == user_id)
            .order_by(WalletTransaction.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def _locked_wallet(self, db: AsyncSession, user_id: UUID) -> Wallet:
        wallet = await self.get_wallet(db, user_id, for_update=True)
        if wallet is None:
            raise LedgerInvariantError(f"No wallet for user {user_id}")
        return wallet

    def _check(self, wallet: Wallet) -> None:
        """Reject any state where 0 <= locked <= balance does not hold."""
        if wallet.locked_balance < 0:
            raise LedgerInvariantError(
                f"Locked balance of {wallet.user_id} would become {wallet.locked_balance}"
            )
        if wallet.locked_balance > wallet.balance:
            raise LedgerInvariantError(
                f"Locked balance {wallet.locked_balance} exceeds balance "
                f"{wallet.balance} for {wallet.user_id}"
            )

    def _record(
        self,
        db: AsyncSession,
        wallet: Wallet,
        transaction_type: str,
        amount: Decimal,
        available_before: Decimal,
        bet_id: Optional[UUID] = None,
        round_id: Optional[UUID] = None,
        description: Optional[str] = None,
    ) -> WalletTransaction:
        entry = WalletTransaction(
            wallet_id=wallet.id,
            user_id=wallet.user_id,
            type=transaction_type,
            amount=amount,
            balance_before=available_before,
            balance_after=wallet.available,
            locked_after=wallet.locked_balance,
            bet_id=bet_id,
            round_id=round_id,
            description=description,
        )
        db.add(entry)
        return entry


# Singleton instance
ledger_service = LedgerService()

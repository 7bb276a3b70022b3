"""Wallet database model."""

from sqlalchemy import CheckConstraint, Column, Numeric, Uuid
from sqlalchemy.orm import relationship

from models.base import BaseModel


class Wallet(BaseModel):
    """
    Per-user balance record.

    ``balance`` includes funds locked in pending bets; only
    ``balance - locked_balance`` can be staked or withdrawn.
    """

    __tablename__ = "wallets"

    user_id = Column(Uuid(as_uuid=True), nullable=False, unique=True)
    balance = Column(Numeric(15, 2), nullable=False, default=0)
    locked_balance = Column(Numeric(15, 2), nullable=False, default=0)

    # Lifetime counters
    total_won = Column(Numeric(15, 2), nullable=False, default=0)
    total_lost = Column(Numeric(15, 2), nullable=False, default=0)
    total_wagered = Column(Numeric(15, 2), nullable=False, default=0)
    total_deposited = Column(Numeric(15, 2), nullable=False, default=0)

    transactions = relationship(
        "WalletTransaction",
        back_populates="wallet",
        order_by="WalletTransaction.created_at",
    )

    __table_args__ = (
        CheckConstraint("balance >= 0", name="non_negative_balance"),
        CheckConstraint("locked_balance >= 0", name="non_negative_locked"),
        CheckConstraint("locked_balance <= balance", name="locked_within_balance"),
    )

    @property
    def available(self):
        return self.balance - self.locked_balance

    def __repr__(self) -> str:
        return f"<Wallet {self.user_id} ${self.balance} (locked ${self.locked_balance})>"

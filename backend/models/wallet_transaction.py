"""Wallet transaction (audit trail) model."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from models.base import BaseModel
from models.enums import TransactionType, sql_in


class WalletTransaction(BaseModel):
    """
    Immutable record of one ledger movement.

    ``amount`` and the before/after columns are in terms of spendable
    balance (``balance - locked_balance``), the number users see.
    """

    __tablename__ = "wallet_transactions"

    wallet_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("wallets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    type = Column(String(16), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    balance_before = Column(Numeric(15, 2), nullable=False)
    balance_after = Column(Numeric(15, 2), nullable=False)
    locked_after = Column(Numeric(15, 2), nullable=False)

    bet_id = Column(Uuid(as_uuid=True), nullable=True)
    round_id = Column(Uuid(as_uuid=True), nullable=True)
    description = Column(Text, nullable=True)

    wallet = relationship("Wallet", back_populates="transactions")

    __table_args__ = (
        CheckConstraint(sql_in("type", TransactionType.ALL), name="valid_transaction_type"),
        Index("idx_wallet_tx_user_created", "user_id", "created_at"),
        Index("idx_wallet_tx_bet", "bet_id"),
    )

    def __repr__(self) -> str:
        return f"<WalletTransaction {self.type} ${self.amount}>"

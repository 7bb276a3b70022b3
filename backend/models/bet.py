"""Bet database model."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from models.base import BaseModel
from models.enums import BetResult, Prediction, sql_in


class Bet(BaseModel):
    """One user's stake on one round."""

    __tablename__ = "bets"

    user_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    round_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("rounds.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    prediction = Column(String(8), nullable=False)

    # Amounts at admission
    total_amount = Column(Numeric(15, 2), nullable=False)
    fee_amount = Column(Numeric(15, 2), nullable=False)
    stake_amount = Column(Numeric(15, 2), nullable=False)

    # Settlement
    result = Column(String(16), nullable=False, default=BetResult.PENDING)
    payout = Column(Numeric(15, 2), nullable=False, default=0)
    profit = Column(Numeric(15, 2), nullable=True)
    is_paid = Column(Boolean, nullable=False, default=False)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    round = relationship("Round", back_populates="bets")

    __table_args__ = (
        UniqueConstraint("user_id", "round_id", name="uq_bets_user_round"),
        CheckConstraint(sql_in("prediction", Prediction.ALL), name="valid_prediction"),
        CheckConstraint(sql_in("result", BetResult.ALL), name="valid_bet_result"),
        CheckConstraint("total_amount > 0", name="positive_amount"),
        CheckConstraint("payout >= 0", name="non_negative_payout"),
        Index("idx_bets_user_result", "user_id", "result"),
    )

    def __repr__(self) -> str:
        return f"<Bet {self.prediction} ${self.total_amount} {self.result}>"

"""Round database model."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from models.base import BaseModel
from models.enums import RoundResult, RoundStatus, sql_in


class Round(BaseModel):
    """A fixed-window up/down prediction round."""

    __tablename__ = "rounds"

    round_number = Column(Integer, nullable=False, unique=True)
    status = Column(String(16), nullable=False, default=RoundStatus.UPCOMING)

    # Schedule
    start_time = Column(DateTime(timezone=True), nullable=False)
    lock_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)

    # Prices and outcome
    start_price = Column(Numeric(18, 8), nullable=True)
    end_price = Column(Numeric(18, 8), nullable=True)
    result = Column(String(16), nullable=True)

    # Pool counters
    up_stake_total = Column(Numeric(15, 2), nullable=False, default=0)
    down_stake_total = Column(Numeric(15, 2), nullable=False, default=0)
    up_bet_count = Column(Integer, nullable=False, default=0)
    down_bet_count = Column(Integer, nullable=False, default=0)
    fee_collected = Column(Numeric(15, 2), nullable=False, default=0)

    # Settlement
    platform_cut = Column(Numeric(15, 2), nullable=False, default=0)
    prize_pool = Column(Numeric(15, 2), nullable=False, default=0)
    is_processed = Column(Boolean, nullable=False, default=False)
    settled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    bets = relationship(
        "Bet",
        back_populates="round",
        order_by="Bet.created_at",
    )

    __table_args__ = (
        CheckConstraint(sql_in("status", RoundStatus.ALL), name="valid_round_status"),
        CheckConstraint(
            f"result IS NULL OR {sql_in('result', RoundResult.ALL)}",
            name="valid_round_result",
        ),
        CheckConstraint("lock_time < end_time", name="lock_before_end"),
        CheckConstraint("start_time < lock_time", name="start_before_lock"),
        Index("idx_rounds_status_start", "status", "start_time"),
        Index("idx_rounds_status_lock", "status", "lock_time"),
        Index("idx_rounds_status_end", "status", "end_time"),
    )

    @property
    def total_pool(self):
        return (self.up_stake_total or 0) + (self.down_stake_total or 0)

    @property
    def total_bets(self) -> int:
        return (self.up_bet_count or 0) + (self.down_bet_count or 0)

    def __repr__(self) -> str:
        return f"<Round #{self.round_number} {self.status}>"

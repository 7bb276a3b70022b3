"""Commission earning model."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)

from models.base import BaseModel
from models.enums import CommissionKind, sql_in


class CommissionEarning(BaseModel):
    """Referrer credit paid for a referred user's bet."""

    __tablename__ = "commission_earnings"

    bet_id = Column(Uuid(as_uuid=True), nullable=False)
    kind = Column(String(16), nullable=False)
    referrer_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    base_amount = Column(Numeric(15, 2), nullable=False)
    percent = Column(Numeric(5, 2), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)

    __table_args__ = (
        UniqueConstraint("bet_id", "kind", name="uq_commission_bet_kind"),
        CheckConstraint(sql_in("kind", CommissionKind.ALL), name="valid_commission_kind"),
    )

    def __repr__(self) -> str:
        return f"<CommissionEarning {self.kind} ${self.amount} -> {self.referrer_id}>"

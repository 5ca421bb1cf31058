# app/market/models/purchase.py
from datetime import datetime, timezone
from decimal import Decimal
import enum

from pydantic import BaseModel, ConfigDict
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, Numeric, String

from app.market.core.db import Base


class PurchaseStatus(str, enum.Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


class Purchase(Base):
    """
    (user, design) 다운로드 권한 장부.
    결제 webhook 으로 생기거나, 무료 다운로드/백필로 amount=0 으로 생긴다.
    (user_id, design_id) 유니크 제약은 두지 않음 -> 중복은 무해, insert 전에 조회로 막는다.
    """

    __tablename__ = "purchases"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    design_id = Column(
        Integer,
        ForeignKey("designs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    amount = Column(Numeric(10, 2), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")

    status = Column(
        Enum(
            PurchaseStatus,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=PurchaseStatus.COMPLETED,
    )

    # Stripe checkout session id (무료 건은 NULL)
    stripe_session_id = Column(String(255), nullable=True, index=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


class PurchaseRead(BaseModel):
    id: int
    user_id: int
    design_id: int
    amount: Decimal
    currency: str
    status: PurchaseStatus
    stripe_session_id: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

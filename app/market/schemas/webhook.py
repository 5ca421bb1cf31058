# app/market/schemas/webhook.py
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class CheckoutSessionMetadata(BaseModel):
    # 체크아웃 세션 만들 때 넣어둔 값 (Stripe 는 문자열로 돌려준다)
    design_id: int = Field(alias="designId")
    user_id: int = Field(alias="userId")


class CheckoutSession(BaseModel):
    id: str
    amount_total: Optional[int] = None   # 최소 통화 단위 (cents)
    currency: Optional[str] = None
    metadata: CheckoutSessionMetadata


class StripeEvent(BaseModel):
    id: str
    type: str
    data: Dict[str, Any]

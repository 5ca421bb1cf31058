# app/market/services/purchase_service.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.market.core.errors import DesignNotFound, UserNotFound
from app.market.models.design import Design
from app.market.models.purchase import Purchase, PurchaseRead, PurchaseStatus
from app.market.models.user import UserORM


async def find_purchase(
    db: AsyncSession,
    user_id: int,
    design_id: int,
    completed_only: bool = False,
) -> Optional[Purchase]:
    stmt = select(Purchase).where(
        Purchase.user_id == user_id,
        Purchase.design_id == design_id,
    )
    if completed_only:
        stmt = stmt.where(Purchase.status == PurchaseStatus.COMPLETED)

    # 중복 행이 있어도 하나만 보면 된다
    result = await db.execute(stmt.order_by(Purchase.id).limit(1))
    return result.scalar_one_or_none()


async def has_completed_purchase(db: AsyncSession, user_id: int, design_id: int) -> bool:
    return await find_purchase(db, user_id, design_id, completed_only=True) is not None


async def ensure_free_entitlement(
    db: AsyncSession,
    user_id: int,
    design_id: int,
    currency: str = "USD",
    created_at: Optional[datetime] = None,
) -> bool:
    """
    amount=0 completed 권한 행이 없으면 만든다 (check-then-insert).
    pending/failed 행만 있으면 completed 행을 새로 추가한다.
    동시에 두 번 들어오면 중복 행이 생길 수 있는데 무해함.

    return: 새로 만들었으면 True
    """
    # pending/failed 행은 권한이 아니므로 completed 만 본다
    if await find_purchase(db, user_id, design_id, completed_only=True) is not None:
        return False

    purchase = Purchase(
        user_id=user_id,
        design_id=design_id,
        amount=Decimal("0"),
        currency=currency or "USD",
        status=PurchaseStatus.COMPLETED,
    )
    if created_at is not None:
        purchase.created_at = created_at

    db.add(purchase)
    await db.commit()
    return True


async def record_checkout_completed(
    db: AsyncSession,
    user_id: int,
    design_id: int,
    amount: Decimal,
    currency: str,
    stripe_session_id: str,
) -> PurchaseRead:
    """
    결제 완료 webhook 처리.
    같은 session id 로 재전송되면 기존 행을 돌려준다.
    metadata 의 디자인/유저가 없으면 DesignNotFound / UserNotFound.
    """
    result = await db.execute(
        select(Purchase).where(Purchase.stripe_session_id == stripe_session_id)
    )
    existing = result.scalars().first()
    if existing:
        return PurchaseRead.model_validate(existing)

    if await db.get(Design, design_id) is None:
        raise DesignNotFound(design_id)
    if await db.get(UserORM, user_id) is None:
        raise UserNotFound(user_id)

    purchase = Purchase(
        user_id=user_id,
        design_id=design_id,
        amount=amount,
        currency=(currency or "USD").upper(),
        status=PurchaseStatus.COMPLETED,
        stripe_session_id=stripe_session_id,
    )
    db.add(purchase)
    await db.commit()
    await db.refresh(purchase)
    return PurchaseRead.model_validate(purchase)


async def list_user_purchases(db: AsyncSession, user_id: int) -> List[PurchaseRead]:
    result = await db.execute(
        select(Purchase)
        .where(
            Purchase.user_id == user_id,
            Purchase.status == PurchaseStatus.COMPLETED,
        )
        .order_by(Purchase.created_at.desc(), Purchase.id.desc())
    )
    return [PurchaseRead.model_validate(r) for r in result.scalars().all()]

# app/market/services/entitlement_service.py
import asyncio
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.market.core.config import settings
from app.market.core.errors import DesignNotFound, PermissionDenied, ResolutionError
from app.market.models.design import Design
from app.market.schemas.download import EntitlementDecision, EntitlementReason
from app.market.services import purchase_service

logger = logging.getLogger(__name__)


class EntitlementResolver:
    """
    "이 유저가 지금 이 디자인을 받을 수 있나?" 판단.

    순서대로 보고 처음 걸리는 규칙으로 결정:
    1. 디자인 없음 -> DesignNotFound
    2. 무료 플래그 or 가격 0/NULL -> 허용 (플래그가 가격보다 우선)
    3. 익명 -> 거부
    4. 본인 디자인 -> 허용
    5. completed 구매 기록 있으면 허용, 없으면 거부

    캐시 없음. 매번 DB 를 다시 본다.
    """

    def __init__(self, session_factory: async_sessionmaker, timeout: Optional[float] = None):
        self.session_factory = session_factory
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT_SECONDS

    async def resolve(self, user_id: Optional[int], design_id: int) -> EntitlementDecision:
        try:
            return await asyncio.wait_for(self._resolve(user_id, design_id), self.timeout)
        except asyncio.TimeoutError as e:
            raise ResolutionError(
                f"Entitlement check for design {design_id} timed out after {self.timeout}s"
            ) from e
        except SQLAlchemyError as e:
            raise ResolutionError(f"Entitlement check for design {design_id} failed: {e}") from e

    async def require(self, user_id: Optional[int], design_id: int) -> EntitlementDecision:
        decision = await self.resolve(user_id, design_id)
        if not decision.granted:
            logger.info(
                "download denied: design_id=%s user_id=%s reason=%s",
                design_id, user_id, decision.reason.value,
            )
            raise PermissionDenied(decision)
        return decision

    async def _resolve(self, user_id: Optional[int], design_id: int) -> EntitlementDecision:
        def decide(granted: bool, reason: EntitlementReason) -> EntitlementDecision:
            return EntitlementDecision(
                design_id=design_id,
                user_id=user_id,
                granted=granted,
                reason=reason,
            )

        async with self.session_factory() as db:
            row = (
                await db.execute(
                    select(Design.price, Design.is_free_download, Design.user_id)
                    .where(Design.id == design_id)
                )
            ).one_or_none()

            if row is None:
                raise DesignNotFound(design_id)

            price, is_free_download, owner_id = row

            if is_free_download or not price:
                return decide(True, EntitlementReason.FREE)

            if user_id is None:
                return decide(False, EntitlementReason.ANONYMOUS)

            if user_id == owner_id:
                return decide(True, EntitlementReason.OWNER)

            if await purchase_service.has_completed_purchase(db, user_id, design_id):
                return decide(True, EntitlementReason.PURCHASED)

            return decide(False, EntitlementReason.NOT_PURCHASED)

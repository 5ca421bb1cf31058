# app/market/services/backfill_service.py
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.market.core.errors import BackfillRowError
from app.market.models.design import Design
from app.market.models.download_event import DownloadEvent
from app.market.services import purchase_service

logger = logging.getLogger(__name__)


class BackfillStrategy(str, enum.Enum):
    # 디자인 소유자 1명에게 권한 부여 (다운로드 로그 없이 downloads 카운터만 믿음)
    OWNER = "owner"
    # design_file_downloads 에 남은 로그인 유저별로 권한 부여
    DOWNLOAD_LOG = "download_log"


@dataclass
class BackfillReport:
    created: int = 0
    skipped_existing: int = 0
    skipped_paid: int = 0
    failed: int = 0
    failures: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.created + self.skipped_existing + self.failed


class EntitlementBackfill:
    """
    과거 무료 다운로드를 purchases 장부로 옮기는 배치.

    - downloads > 0 인 디자인을 id 순으로 페이지 단위 조회
    - 유료(price > 0) 디자인은 건너뜀 (유료를 공짜로 열어주지 않기 위해)
    - (user, design) 별로 이미 purchases 가 있으면 skip, 없으면 amount=0 completed 생성
    - 행 단위 commit, 한 행 실패해도 로그 남기고 다음으로 진행
    - 다시 돌려도 중복 생성 없음
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        strategy: BackfillStrategy = BackfillStrategy.OWNER,
        page_size: int = 100,
    ):
        self.session_factory = session_factory
        self.strategy = BackfillStrategy(strategy)
        self.page_size = page_size

    async def run(self) -> BackfillReport:
        report = BackfillReport()
        last_id = 0

        logger.info(
            "=== Entitlement Backfill START (strategy=%s, page_size=%s) ===",
            self.strategy.value, self.page_size,
        )

        async with self.session_factory() as session:
            while True:
                designs = (
                    await session.execute(
                        select(
                            Design.id,
                            Design.user_id,
                            Design.price,
                            Design.currency,
                            Design.created_at,
                        )
                        .where(Design.id > last_id, Design.downloads > 0)
                        .order_by(Design.id)
                        .limit(self.page_size)
                    )
                ).all()

                if not designs:
                    break

                for design in designs:
                    last_id = design.id

                    if design.price is not None and design.price > 0:
                        report.skipped_paid += 1
                        logger.info(
                            "SKIP paid design %s (price=%s)", design.id, design.price
                        )
                        continue

                    await self._reconcile_design(session, design, report)

                logger.info(
                    "Progress: last_id=%d created=%d skipped_existing=%d skipped_paid=%d failed=%d",
                    last_id, report.created, report.skipped_existing,
                    report.skipped_paid, report.failed,
                )

        logger.info("=== Entitlement Backfill END ===")
        logger.info(
            "Result Summary: created=%d, skipped_existing=%d, skipped_paid=%d, failed=%d",
            report.created, report.skipped_existing, report.skipped_paid, report.failed,
        )
        return report

    async def _reconcile_design(
        self,
        session: AsyncSession,
        design,
        report: BackfillReport,
    ) -> None:
        design_id = design.id
        currency = design.currency or "USD"
        design_created_at = design.created_at

        try:
            pairs = await self._candidate_pairs(session, design)
        except Exception as e:
            await session.rollback()
            self._fail(report, design_id, None, e)
            return

        for user_id, first_seen in pairs:
            try:
                created = await purchase_service.ensure_free_entitlement(
                    session,
                    user_id,
                    design_id,
                    currency=currency,
                    created_at=first_seen or design_created_at or datetime.now(timezone.utc),
                )
            except Exception as e:
                await session.rollback()
                self._fail(report, design_id, user_id, e)
                continue

            if created:
                report.created += 1
                logger.info("CREATED purchase design=%s user=%s", design_id, user_id)
            else:
                report.skipped_existing += 1
                logger.info("SKIP existing purchase design=%s user=%s", design_id, user_id)

    async def _candidate_pairs(
        self,
        session: AsyncSession,
        design,
    ) -> List[Tuple[int, Optional[datetime]]]:
        """(user_id, 가장 이른 다운로드 시각) 목록"""
        if self.strategy == BackfillStrategy.DOWNLOAD_LOG:
            rows = await session.execute(
                select(DownloadEvent.user_id, func.min(DownloadEvent.created_at))
                .where(
                    DownloadEvent.design_id == design.id,
                    DownloadEvent.user_id.is_not(None),
                )
                .group_by(DownloadEvent.user_id)
                .order_by(DownloadEvent.user_id)
            )
            return [(user_id, first_seen) for user_id, first_seen in rows.all()]

        first_seen = await session.scalar(
            select(func.min(DownloadEvent.created_at))
            .where(DownloadEvent.design_id == design.id)
        )
        return [(design.user_id, first_seen)]

    def _fail(
        self,
        report: BackfillReport,
        design_id: int,
        user_id: Optional[int],
        exc: Exception,
    ) -> None:
        err = BackfillRowError(f"design={design_id} user={user_id}: {exc}")
        report.failed += 1
        report.failures.append({"design_id": design_id, "user_id": user_id, "error": str(exc)})
        logger.error("FAIL %s", err, exc_info=True)

# app/market/services/download_service.py
import asyncio
import logging
import posixpath
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.market.core.config import settings
from app.market.core.errors import (
    BookkeepingError,
    DesignFileNotFound,
    ObjectNotFound,
    ResolutionError,
)
from app.market.core.r2_client import R2Storage, guess_content_type
from app.market.models.design import Design
from app.market.models.download_event import DownloadEvent
from app.market.schemas.download import EntitlementDecision
from app.market.services import design_service, purchase_service

logger = logging.getLogger(__name__)

MODE_STREAM = "stream"
MODE_LINK = "link"


def legacy_path(path: str) -> str:
    """
    예전 업로드 경로 규칙과 현재 규칙을 서로 바꿔준다.
    - 현재: designs/<design_id>/<name>
    - 예전: <design_id>/<name>  (버킷 루트 기준)
    """
    prefix = f"{design_service.STORAGE_PREFIX}/"
    if path.startswith(prefix):
        return path[len(prefix):]
    return prefix + path.lstrip("/")


@dataclass(frozen=True)
class DownloadPayload:
    design_id: int
    design_file_id: int
    file_path: str               # 실제로 찾은 key (fallback 이면 예전 경로)
    filename: str
    content_type: str
    content: Optional[bytes] = None
    url: Optional[str] = None
    expires_in: Optional[int] = None


class DownloadExecutor:
    """
    권한 확인이 끝난 다운로드를 실제로 처리.
    1) design_files 에서 파일 찾기
    2) R2 에서 가져오기 (없으면 예전 경로로 한 번 더)
    3) 전달이 끝난 뒤에 record() 로 카운터/이력/무료 권한 기록
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        storage: R2Storage,
        link_ttl: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.storage = storage
        self.link_ttl = link_ttl or settings.DOWNLOAD_LINK_TTL_SECONDS

    async def fetch(
        self,
        design_id: int,
        file_path: Optional[str] = None,
        mode: str = MODE_STREAM,
    ) -> DownloadPayload:
        try:
            async with self.session_factory() as db:
                design_file = await design_service.get_file(db, design_id, file_path)
        except SQLAlchemyError as e:
            raise ResolutionError(f"File lookup for design {design_id} failed: {e}") from e

        if design_file is None:
            raise DesignFileNotFound(design_id, file_path)

        key = design_file.file_path
        if mode == MODE_LINK:
            found_key = await self._locate(design_id, key)
            url = await asyncio.to_thread(self.storage.presigned_url, found_key, self.link_ttl)
            content = None
        else:
            found_key, content = await self._retrieve(design_id, key)
            url = None

        filename = posixpath.basename(found_key) or "design-file"
        return DownloadPayload(
            design_id=design_id,
            design_file_id=design_file.id,
            file_path=found_key,
            filename=filename,
            content_type=guess_content_type(filename),
            content=content,
            url=url,
            expires_in=self.link_ttl if url else None,
        )

    async def _retrieve(self, design_id: int, key: str) -> tuple[str, bytes]:
        try:
            return key, await asyncio.to_thread(self.storage.retrieve, key)
        except ObjectNotFound:
            fallback = legacy_path(key)
            logger.warning("object %s missing, trying legacy path %s", key, fallback)

        try:
            return fallback, await asyncio.to_thread(self.storage.retrieve, fallback)
        except ObjectNotFound as e:
            raise DesignFileNotFound(design_id, key) from e

    async def _locate(self, design_id: int, key: str) -> str:
        if await asyncio.to_thread(self.storage.exists, key):
            return key

        fallback = legacy_path(key)
        logger.warning("object %s missing, trying legacy path %s", key, fallback)
        if await asyncio.to_thread(self.storage.exists, fallback):
            return fallback

        raise DesignFileNotFound(design_id, key)

    async def record(self, payload: DownloadPayload, decision: EntitlementDecision) -> List[str]:
        """
        다운로드 후처리. 실패해도 예외를 밖으로 던지지 않고 로그만 남긴다.
        return: 실패한 단계 이름 목록 (운영 확인/테스트용)
        """
        steps = [
            ("increment_downloads", self._increment_downloads),
            ("download_event", self._insert_event),
        ]
        if decision.is_free and decision.user_id is not None:
            steps.append(("free_entitlement", self._ensure_free_entitlement))

        failed: List[str] = []
        try:
            async with self.session_factory() as db:
                for name, step in steps:
                    try:
                        await step(db, payload, decision)
                    except Exception as e:
                        await db.rollback()
                        failed.append(name)
                        err = BookkeepingError(
                            f"{name} failed for design {payload.design_id}: {e}"
                        )
                        logger.error("bookkeeping failure: %s", err, exc_info=True)
        except Exception as e:
            done = set(failed)
            failed.extend(name for name, _ in steps if name not in done)
            logger.error(
                "bookkeeping failure: no session for design %s: %s",
                payload.design_id, e, exc_info=True,
            )

        return failed

    async def execute(
        self,
        decision: EntitlementDecision,
        file_path: Optional[str] = None,
        mode: str = MODE_STREAM,
    ) -> DownloadPayload:
        """fetch + record 를 한 번에 (HTTP 밖에서 쓸 때)."""
        payload = await self.fetch(decision.design_id, file_path, mode)
        await self.record(payload, decision)
        return payload

    async def _increment_downloads(
        self, db: AsyncSession, payload: DownloadPayload, decision: EntitlementDecision
    ) -> None:
        # read-modify-write 대신 DB 에서 +1
        await db.execute(
            update(Design)
            .where(Design.id == payload.design_id)
            .values(downloads=Design.downloads + 1)
        )
        await db.commit()

    async def _insert_event(
        self, db: AsyncSession, payload: DownloadPayload, decision: EntitlementDecision
    ) -> None:
        db.add(
            DownloadEvent(
                design_file_id=payload.design_file_id,
                design_id=payload.design_id,
                user_id=decision.user_id,
            )
        )
        await db.commit()

    async def _ensure_free_entitlement(
        self, db: AsyncSession, payload: DownloadPayload, decision: EntitlementDecision
    ) -> None:
        design = await db.get(Design, payload.design_id)
        currency = design.currency if design else "USD"
        created = await purchase_service.ensure_free_entitlement(
            db, decision.user_id, payload.design_id, currency=currency
        )
        if created:
            logger.info(
                "free entitlement created: design_id=%s user_id=%s",
                payload.design_id, decision.user_id,
            )

# app/market/services/design_service.py
import os
import re
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.market.core.errors import DesignNotFound
from app.market.core.r2_client import R2Storage, guess_content_type
from app.market.models.design import (
    Design,
    DesignFile,
    DesignRead,
    DesignCreate,
    DesignFileRead,
)

# 현재 업로드 경로 규칙: designs/<design_id>/<slug>.<ext>
STORAGE_PREFIX = "designs"

# 무료 디자인은 원래 카테고리 대신 이 묶음으로 보여준다
FREEBIES_CATEGORY = "Freebies"


def slugify_filename(name: str, extension: Optional[str] = None) -> str:
    """
    파일명 정리
    - 소문자, 공백 -> 하이픈, 영숫자/하이픈 외 제거
    - extension 주면 그 확장자로, 아니면 원래 확장자 유지
    """
    base, ext = os.path.splitext(name)
    slug = re.sub(r"\s+", "-", base.lower())
    slug = re.sub(r"[^a-z0-9-]", "", slug) or "file"

    if extension:
        return f"{slug}.{extension.lstrip('.')}"
    return f"{slug}{ext.lower()}"


def build_storage_path(design_id: int, filename: str, extension: Optional[str] = None) -> str:
    return f"{STORAGE_PREFIX}/{design_id}/{slugify_filename(filename, extension)}"


async def get_design(db: AsyncSession, design_id: int) -> Optional[DesignRead]:
    obj = await db.get(Design, design_id)
    return DesignRead.model_validate(obj) if obj else None


async def list_designs(db: AsyncSession, category: Optional[str] = None) -> List[DesignRead]:
    """
    최신순 목록.
    category="Freebies" 면 무료 디자인 전체, 다른 카테고리면 그 카테고리의 유료 디자인만.
    """
    free = or_(
        Design.is_free_download.is_(True),
        Design.price.is_(None),
        Design.price == 0,
    )

    stmt = select(Design)
    if category == FREEBIES_CATEGORY:
        stmt = stmt.where(free)
    elif category:
        stmt = stmt.where(Design.category == category, ~free)

    result = await db.execute(stmt.order_by(Design.created_at.desc(), Design.id.desc()))
    return [DesignRead.model_validate(r) for r in result.scalars().all()]


async def create_design(db: AsyncSession, owner_id: int, data: DesignCreate) -> DesignRead:
    design = Design(
        user_id=owner_id,
        name=data.name,
        description=data.description,
        category=data.category,
        price=data.price,
        currency=data.currency.upper(),
        is_free_download=data.is_free_download,
        downloads=0,
    )
    db.add(design)
    await db.commit()
    await db.refresh(design)
    return DesignRead.model_validate(design)


async def list_files(db: AsyncSession, design_id: int) -> List[DesignFileRead]:
    result = await db.execute(
        select(DesignFile)
        .where(DesignFile.design_id == design_id)
        .order_by(DesignFile.display_order, DesignFile.id)
    )
    return [DesignFileRead.model_validate(r) for r in result.scalars().all()]


async def get_file(
    db: AsyncSession,
    design_id: int,
    file_path: Optional[str] = None,
) -> Optional[DesignFileRead]:
    """
    file_path 없으면 display_order 가 가장 작은 파일.
    있으면 해당 디자인에 속한 파일인지 확인해서 반환.
    """
    stmt = select(DesignFile).where(DesignFile.design_id == design_id)
    if file_path:
        stmt = stmt.where(DesignFile.file_path == file_path)

    stmt = stmt.order_by(DesignFile.display_order, DesignFile.id).limit(1)
    obj = (await db.execute(stmt)).scalar_one_or_none()
    return DesignFileRead.model_validate(obj) if obj else None


async def add_file(
    db: AsyncSession,
    storage: R2Storage,
    design_id: int,
    filename: str,
    data: bytes,
    content_type: Optional[str] = None,
) -> DesignFileRead:
    """
    R2 업로드 + design_files 기록.
    display_order 는 기존 파일 뒤에 붙인다.
    """
    design = await db.get(Design, design_id)
    if not design:
        raise DesignNotFound(design_id)

    key = build_storage_path(design_id, filename)
    storage.store(key, data, content_type or guess_content_type(filename))

    existing = await list_files(db, design_id)
    next_order = max((f.display_order for f in existing), default=-1) + 1

    ext = os.path.splitext(filename)[1].lstrip(".").lower()
    design_file = DesignFile(
        design_id=design_id,
        file_path=key,
        file_type=ext or None,
        display_order=next_order,
    )
    db.add(design_file)
    await db.commit()
    await db.refresh(design_file)
    return DesignFileRead.model_validate(design_file)

# app/market/routers/api_designs.py
import os
from typing import List, Optional
from urllib.parse import quote

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    HTTPException,
    Query,
    UploadFile,
    status,
)
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.market.core.db import get_db, get_session_factory
from app.market.core.errors import (
    MarketError,
    NotFoundError,
    PermissionDenied,
    ResolutionError,
    StorageError,
)
from app.market.core.r2_client import R2Storage, get_storage
from app.market.core.security import get_current_user_id
from app.market.models.design import DesignCreate, DesignFileRead, DesignRead
from app.market.schemas.download import (
    DownloadLinkResponse,
    EntitlementReason,
    PermissionResponse,
)
from app.market.services import design_service
from app.market.services.download_service import MODE_LINK, DownloadExecutor
from app.market.services.entitlement_service import EntitlementResolver

router = APIRouter(prefix="/api/designs", tags=["designs"])


def get_resolver(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> EntitlementResolver:
    return EntitlementResolver(session_factory)


def get_executor(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    storage: R2Storage = Depends(get_storage),
) -> DownloadExecutor:
    return DownloadExecutor(session_factory, storage)


def to_http_error(e: MarketError) -> HTTPException:
    """
    서비스 예외 -> HTTP 응답
    권한 거부(로그인/구매 유도)와 "파일 없음", "잠시 후 다시" 를 섞지 않는다.
    """
    if isinstance(e, PermissionDenied):
        if e.decision.reason == EntitlementReason.ANONYMOUS:
            return HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "login_required", "message": "Login to download this design"},
            )
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "purchase_required", "message": "Purchase this design to download it"},
        )
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Content unavailable")
    if isinstance(e, ResolutionError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Could not check download permission, please retry",
        )
    if isinstance(e, StorageError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Download failed, please retry",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


def attachment_header(filename: str) -> str:
    """
    Content-Disposition 값. 헤더는 latin-1 이라 한글 파일명은 filename* (RFC 5987) 로 보낸다.
    filename= 에는 ASCII 만 남긴 대체 이름.
    """
    def _ascii(s: str) -> str:
        return "".join(c for c in s if 32 <= ord(c) < 127 and c not in '"\\')

    stem, ext = os.path.splitext(filename)
    fallback = f"{_ascii(stem).strip() or 'download'}{_ascii(ext)}"

    value = f'attachment; filename="{fallback}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(filename, safe='')}"
    return value


@router.post("", response_model=DesignRead, status_code=status.HTTP_201_CREATED)
async def create_design(
    payload: DesignCreate,
    user_id=Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login required")
    return await design_service.create_design(db, user_id, payload)


@router.get("", response_model=List[DesignRead])
async def list_designs(
    category: Optional[str] = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    """최신순. category=Freebies 는 무료 디자인만"""
    return await design_service.list_designs(db, category)


@router.get("/{design_id}", response_model=DesignRead)
async def get_design(
    design_id: int,
    db: AsyncSession = Depends(get_db),
):
    design = await design_service.get_design(db, design_id)
    if not design:
        raise HTTPException(status_code=404, detail="Content unavailable")
    return design


@router.get("/{design_id}/files", response_model=List[DesignFileRead])
async def list_design_files(
    design_id: int,
    db: AsyncSession = Depends(get_db),
):
    if not await design_service.get_design(db, design_id):
        raise HTTPException(status_code=404, detail="Content unavailable")
    return await design_service.list_files(db, design_id)


@router.post(
    "/{design_id}/files",
    response_model=DesignFileRead,
    status_code=status.HTTP_201_CREATED,
)
async def upload_design_file(
    design_id: int,
    file: UploadFile = File(...),
    user_id=Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    storage: R2Storage = Depends(get_storage),
):
    """판매자 본인만 자기 디자인에 파일 추가 가능"""
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login required")

    design = await design_service.get_design(db, design_id)
    if not design:
        raise HTTPException(status_code=404, detail="Content unavailable")
    if design.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your design")

    data = await file.read()
    try:
        return await design_service.add_file(
            db,
            storage,
            design_id,
            filename=file.filename or "design-file",
            data=data,
            content_type=file.content_type,
        )
    except MarketError as e:
        raise to_http_error(e)


@router.get("/{design_id}/permission", response_model=PermissionResponse)
async def check_permission(
    design_id: int,
    user_id=Depends(get_current_user_id),
    resolver: EntitlementResolver = Depends(get_resolver),
):
    try:
        decision = await resolver.resolve(user_id, design_id)
    except MarketError as e:
        raise to_http_error(e)

    return PermissionResponse(
        design_id=design_id,
        can_download=decision.granted,
        reason=decision.reason,
    )


@router.get("/{design_id}/download")
async def download_design(
    design_id: int,
    background_tasks: BackgroundTasks,
    file_path: Optional[str] = Query(default=None),
    mode: str = Query(default="stream", pattern="^(stream|link)$"),
    user_id=Depends(get_current_user_id),
    resolver: EntitlementResolver = Depends(get_resolver),
    executor: DownloadExecutor = Depends(get_executor),
):
    """
    - mode=stream: 파일 바이트를 첨부파일로 응답
    - mode=link: 짧게 유효한 presigned URL 응답
    카운터/이력/무료 권한 기록은 응답을 보낸 뒤 background task 로 처리
    """
    try:
        decision = await resolver.require(user_id, design_id)
        payload = await executor.fetch(design_id, file_path=file_path, mode=mode)
    except MarketError as e:
        raise to_http_error(e)

    background_tasks.add_task(executor.record, payload, decision)

    if mode == MODE_LINK:
        return DownloadLinkResponse(
            url=payload.url,
            file_path=payload.file_path,
            expires_in=payload.expires_in,
        )

    return Response(
        content=payload.content,
        media_type=payload.content_type,
        headers={"Content-Disposition": attachment_header(payload.filename)},
    )

# app/market/schemas/download.py
import enum

from pydantic import BaseModel


class EntitlementReason(str, enum.Enum):
    # 허용
    FREE = "free"
    OWNER = "owner"
    PURCHASED = "purchased"
    # 거부
    ANONYMOUS = "anonymous"
    NOT_PURCHASED = "not_purchased"


class EntitlementDecision(BaseModel):
    """
    권한 판단 결과.
    - granted: 다운로드 가능 여부
    - reason: 화면 메시지용 (로그인 유도 / 구매 유도 구분)
    """
    design_id: int
    user_id: int | None = None
    granted: bool
    reason: EntitlementReason

    @property
    def is_free(self) -> bool:
        return self.reason == EntitlementReason.FREE


class PermissionResponse(BaseModel):
    design_id: int
    can_download: bool
    reason: EntitlementReason


class DownloadLinkResponse(BaseModel):
    url: str
    file_path: str
    expires_in: int

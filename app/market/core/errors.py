# app/market/core/errors.py
"""
서비스 계층에서 쓰는 예외들.

라우터는 이 예외들을 잡아서 HTTPException 으로 바꾼다.
- NotFoundError    -> 404 (콘텐츠 없음)
- PermissionDenied -> 401/403 (로그인/구매 유도)
- ResolutionError  -> 503 (재시도 가능, 거부 아님)
- StorageError     -> 502 (재시도 가능)
BookkeepingError / BackfillRowError 는 로그만 남기고 밖으로 던지지 않는다.
"""


class MarketError(Exception):
    pass


class NotFoundError(MarketError):
    pass


class DesignNotFound(NotFoundError):
    def __init__(self, design_id: int):
        super().__init__(f"Design {design_id} not found")
        self.design_id = design_id


class DesignFileNotFound(NotFoundError):
    def __init__(self, design_id: int, file_path: str | None = None):
        if file_path:
            message = f"File {file_path!r} of design {design_id} not found"
        else:
            message = f"Design {design_id} has no downloadable file"
        super().__init__(message)
        self.design_id = design_id
        self.file_path = file_path


class UserNotFound(NotFoundError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class PermissionDenied(MarketError):
    def __init__(self, decision):
        super().__init__(
            f"Download of design {decision.design_id} denied ({decision.reason.value})"
        )
        self.decision = decision


class ResolutionError(MarketError):
    """권한 판단 중 백엔드 오류/타임아웃. 거부와 구분해야 한다."""


class StorageError(MarketError):
    """오브젝트 스토리지 오류 (권한, 일시 장애 등)."""


class ObjectNotFound(StorageError):
    """스토리지에 해당 key 가 없음."""

    def __init__(self, key: str):
        super().__init__(f"Object {key!r} not found")
        self.key = key


class BookkeepingError(MarketError):
    pass


class BackfillRowError(MarketError):
    pass

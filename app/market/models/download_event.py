# app/market/models/download_event.py
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer

from app.market.core.db import Base


class DownloadEvent(Base):
    """다운로드 감사 로그. 권한 판단에는 쓰지 않고 백필 입력으로만 쓴다."""

    __tablename__ = "design_file_downloads"

    id = Column(Integer, primary_key=True, index=True)
    design_file_id = Column(
        Integer,
        ForeignKey("design_files.id", ondelete="CASCADE"),
        nullable=False,
    )
    design_id = Column(
        Integer,
        ForeignKey("designs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # 익명 다운로드면 NULL
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

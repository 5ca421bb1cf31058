# app/market/models/design.py
from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, computed_field
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from app.market.core.db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Design(Base):
    __tablename__ = "designs"

    id = Column(Integer, primary_key=True, index=True)
    # 판매자(업로더)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String(200), nullable=False)
    description = Column(Text)
    category = Column(String(50))            # Templates / Fonts / Logos / Icons / UI Kits

    # NULL 또는 0 이면 무료
    price = Column(Numeric(10, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="USD")
    is_free_download = Column(Boolean, nullable=False, default=False)

    # 누적 다운로드 수 (동시성 보장 X, 근사치)
    downloads = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        default=_utcnow,
        onupdate=_utcnow,
        nullable=False,
    )

    files = relationship(
        "DesignFile",
        back_populates="design",
        cascade="all, delete-orphan",
        order_by="DesignFile.display_order",
    )
    # purchases / design_file_downloads 는 FK ondelete=CASCADE 로 같이 지워진다


class DesignFile(Base):
    __tablename__ = "design_files"

    id = Column(Integer, primary_key=True, index=True)
    design_id = Column(
        Integer,
        ForeignKey("designs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # R2 object key. 예: "designs/12/logo-pack.zip"
    file_path = Column(String(500), nullable=False)
    file_type = Column(String(50))
    display_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    design = relationship("Design", back_populates="files")


# ================= Pydantic =================

class DesignRead(BaseModel):
    id: int
    user_id: int
    name: str
    description: str | None = None
    category: str | None = None
    price: Decimal | None = None
    currency: str = "USD"
    is_free_download: bool = False
    downloads: int = 0
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    # 응답에도 포함 (목록에서 Freebies 표시용)
    @computed_field
    @property
    def is_free(self) -> bool:
        return self.is_free_download or not self.price


class DesignCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    category: str | None = None
    # 0 또는 NULL 은 무료, 그 외엔 양수만
    price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    is_free_download: bool = False


class DesignFileRead(BaseModel):
    id: int
    design_id: int
    file_path: str
    file_type: str | None = None
    display_order: int = 0

    model_config = ConfigDict(from_attributes=True)

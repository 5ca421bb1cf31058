# app/market/core/db.py
import re
import urllib.parse

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    async_sessionmaker,
    AsyncSession,
)
from sqlalchemy.orm import declarative_base

from app.market.core.config import settings


def to_async_url(raw_url: str) -> tuple[str, dict]:
    """
    DATABASE_URL -> (async 드라이버 URL, connect_args)

    - postgres: sslmode 같은 querystring 제거 후 postgresql+asyncpg 로 변경, SSL 강제
    - sqlite 등 나머지는 그대로 사용
    """
    if not re.match(r"^postgres(ql)?(\+\w+)?:", raw_url):
        return raw_url, {}

    parsed = urllib.parse.urlsplit(raw_url)
    clean_url = urllib.parse.urlunsplit(parsed._replace(query=""))
    clean_url = re.sub(r"^postgres(ql)?(\+\w+)?:", "postgresql+asyncpg:", clean_url)
    return clean_url, {"ssl": "require"}


ASYNC_DATABASE_URL, _connect_args = to_async_url(settings.DATABASE_URL)

engine = create_async_engine(
    ASYNC_DATABASE_URL,
    echo=False,        # 필요하면 True로 바꿔서 SQL 로그 보기
    future=True,
    connect_args=_connect_args,
)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)

Base = declarative_base()


async def get_db():
    """FastAPI 의존성용 세션"""
    async with AsyncSessionLocal() as session:
        yield session


def get_session_factory() -> async_sessionmaker:
    """
    resolver / executor 처럼 스스로 세션을 여는 컴포넌트에 넘겨줄 팩토리.
    테스트에서는 dependency_overrides 로 교체한다.
    """
    return AsyncSessionLocal


async def init_db():
    """
    개발 단계용: 테이블 자동 생성.
    운영에서는 마이그레이션으로 관리.
    """
    async with engine.begin() as conn:
        # 여기서 import 해야 순환참조 방지
        from app.market.models import user, design, purchase, download_event  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

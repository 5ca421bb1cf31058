import os

# Settings() 는 import 시점에 읽히므로 앱 모듈보다 먼저 세팅
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test")

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.market.core.db import Base
from app.market.core.errors import ObjectNotFound, StorageError
from app.market.core.security import hash_password
from app.market.models.design import Design, DesignFile
from app.market.models.download_event import DownloadEvent
from app.market.models.purchase import Purchase, PurchaseStatus
from app.market.models.user import UserORM


class FakeStorage:
    """R2Storage 와 같은 메서드를 가진 메모리 저장소"""

    def __init__(self):
        self.objects = {}
        self.broken_keys = set()
        self.requested = []

    def retrieve(self, key):
        self.requested.append(key)
        if key in self.broken_keys:
            raise StorageError(f"R2 request for {key!r} failed: AccessDenied")
        if key not in self.objects:
            raise ObjectNotFound(key)
        return self.objects[key]

    def exists(self, key):
        self.requested.append(key)
        if key in self.broken_keys:
            raise StorageError(f"R2 request for {key!r} failed: AccessDenied")
        return key in self.objects

    def store(self, key, data, content_type=None):
        self.objects[key] = data
        return key

    def public_url(self, key):
        return f"https://cdn.example.test/{key}"

    def presigned_url(self, key, expires_in):
        return f"https://r2.example.test/{key}?X-Amz-Expires={expires_in}"


class Factory:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def user(self, username="buyer", password="password123"):
        async with self.session_factory() as db:
            user = UserORM(name=username.title(), username=username, password_hash=hash_password(password))
            db.add(user)
            await db.commit()
            return user.id

    async def design(
        self, owner_id, price=None, is_free_download=False, downloads=0, currency="USD", category=None
    ):
        async with self.session_factory() as db:
            design = Design(
                user_id=owner_id,
                name="Retro Font Pack",
                category=category,
                price=Decimal(str(price)) if price is not None else None,
                currency=currency,
                is_free_download=is_free_download,
                downloads=downloads,
            )
            db.add(design)
            await db.commit()
            return design.id

    async def file(self, design_id, file_path, display_order=0):
        async with self.session_factory() as db:
            f = DesignFile(design_id=design_id, file_path=file_path, file_type="zip", display_order=display_order)
            db.add(f)
            await db.commit()
            return f.id

    async def purchase(self, user_id, design_id, amount="25.00", status=PurchaseStatus.COMPLETED):
        async with self.session_factory() as db:
            p = Purchase(user_id=user_id, design_id=design_id, amount=Decimal(amount), currency="USD", status=status)
            db.add(p)
            await db.commit()
            return p.id

    async def download_event(self, design_id, design_file_id, user_id=None):
        async with self.session_factory() as db:
            db.add(DownloadEvent(design_id=design_id, design_file_id=design_file_id, user_id=user_id))
            await db.commit()

    async def downloads(self, design_id):
        async with self.session_factory() as db:
            return (await db.get(Design, design_id)).downloads

    async def purchases(self, design_id, user_id=None):
        async with self.session_factory() as db:
            stmt = select(Purchase).where(Purchase.design_id == design_id)
            if user_id is not None:
                stmt = stmt.where(Purchase.user_id == user_id)
            return (await db.execute(stmt.order_by(Purchase.id))).scalars().all()

    async def event_count(self, design_id):
        async with self.session_factory() as db:
            return await db.scalar(
                select(func.count()).select_from(DownloadEvent).where(DownloadEvent.design_id == design_id)
            )


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'market.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def factory(session_factory):
    return Factory(session_factory)


@pytest.fixture
def storage():
    return FakeStorage()

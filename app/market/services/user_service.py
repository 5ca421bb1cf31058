# app/market/services/user_service.py
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.market.models.user import UserORM, User, UserCreate
from app.market.core.security import hash_password, verify_password


async def get_by_id(db: AsyncSession, user_id: int) -> Optional[User]:
    user_orm = await db.get(UserORM, user_id)
    if not user_orm:
        return None
    return User.model_validate(user_orm)


async def get_by_username(db: AsyncSession, username: str) -> Optional[UserORM]:
    result = await db.execute(
        select(UserORM).where(UserORM.username == username)
    )
    return result.scalar_one_or_none()


async def create_user(db: AsyncSession, user_in: UserCreate) -> User:
    existing = await get_by_username(db, user_in.username)
    if existing:
        raise ValueError("Username already exists")

    user_orm = UserORM(
        name=user_in.name,
        username=user_in.username,
        password_hash=hash_password(user_in.password),
        is_active=True,
    )
    db.add(user_orm)
    await db.commit()
    await db.refresh(user_orm)

    return User.model_validate(user_orm)


async def authenticate(
    db: AsyncSession,
    username: str,
    password: str,
) -> Optional[User]:
    user_orm = await get_by_username(db, username)
    if not user_orm:
        return None
    if not user_orm.is_active:
        return None

    if not verify_password(password, user_orm.password_hash):
        return None

    return User.model_validate(user_orm)

# app/market/core/security.py
from typing import Optional

from fastapi import Request
from passlib.context import CryptContext

# bcrypt 대신 pbkdf2_sha256 사용 (호환성 좋고 안전함)
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def get_current_user_id(request: Request) -> Optional[int]:
    """
    세션에 저장된 로그인 유저 id. 비로그인이면 None.
    (다운로드 권한 판단에서는 None = 익명 사용자)
    """
    return request.session.get("user_id")

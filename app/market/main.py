# app/market/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.middleware.sessions import SessionMiddleware

from app.market.core.config import settings
from app.market.core.db import init_db
from app.market.routers import api_auth, api_designs, api_purchases

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 개발 단계용: 테이블 자동 생성
    await init_db()
    yield


app = FastAPI(
    title="Design Market",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)

# 세션 (로그인 상태 유지용)
app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SECRET_KEY,
    session_cookie="design_market_session",
)

# 라우터 등록
app.include_router(api_auth.router)
app.include_router(api_designs.router)
app.include_router(api_purchases.router)


# 헬스체크
@app.get("/health")
async def health_check():
    return {"status": "ok"}

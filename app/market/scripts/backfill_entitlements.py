# app/market/scripts/backfill_entitlements.py
"""
과거 무료 다운로드 -> purchases(amount=0) 백필.

    python -m app.market.scripts.backfill_entitlements --strategy owner
    python -m app.market.scripts.backfill_entitlements --strategy download_log --page-size 50

종료코드: 설정 누락/DB 접속 실패면 1, 그 외(행 단위 실패 포함)는 0
"""
import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime

from dotenv import load_dotenv
load_dotenv()


# =========================
# Logging 설정
# =========================
LOG_DIR = "logs"

logger = logging.getLogger("backfill_entitlements")


def setup_logging() -> str:
    os.makedirs(LOG_DIR, exist_ok=True)
    log_file = os.path.join(
        LOG_DIR,
        f"backfill_entitlements_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log",
    )
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        handlers=[
            logging.StreamHandler(),                          # 콘솔
            logging.FileHandler(log_file, encoding="utf-8"),  # 파일
        ],
    )
    return log_file


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Backfill zero-amount purchases for historical free downloads",
    )
    parser.add_argument(
        "--strategy",
        choices=["owner", "download_log"],
        default="owner",
        help="owner: grant the design owner; download_log: grant every logged downloader",
    )
    parser.add_argument("--page-size", type=int, default=100)
    return parser.parse_args(argv)


async def run_backfill(strategy: str, page_size: int) -> int:
    # 설정(DATABASE_URL)이 없으면 여기서 ValidationError
    from app.market.core.db import AsyncSessionLocal, engine
    from app.market.services.backfill_service import BackfillStrategy, EntitlementBackfill
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        logger.error("Database is not reachable: %s", e)
        return 1

    try:
        job = EntitlementBackfill(
            AsyncSessionLocal,
            strategy=BackfillStrategy(strategy),
            page_size=page_size,
        )
        report = await job.run()
    finally:
        await engine.dispose()

    if report.failures:
        logger.info("Failed samples (up to 10):")
        for item in report.failures[:10]:
            logger.info(
                "  design=%s user=%s error=%s",
                item["design_id"], item["user_id"], item["error"],
            )

    return 0


def main(argv=None) -> int:
    args = parse_args(argv)
    log_file = setup_logging()

    if not os.environ.get("DATABASE_URL"):
        logger.error("DATABASE_URL is missing in environment variables.")
        return 1

    code = asyncio.run(run_backfill(args.strategy, args.page_size))
    logger.info("Log file saved to: %s", log_file)
    return code


if __name__ == "__main__":
    sys.exit(main())

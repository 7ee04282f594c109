"""
自動化服務：定期檢查是否該結算，條件滿足就觸發

任何人都可以觸發結算，這裡只是服務內建的一個自動觸發者。
"""
import asyncio
from datetime import datetime
from typing import Optional
import logging

from sqlalchemy.orm import Session

from core.round_manager import RoundManager
from models import RandomnessRequest, utcnow

logger = logging.getLogger(__name__)


def perform_upkeep(db: Session, oracle, now: Optional[datetime] = None) -> Optional[RandomnessRequest]:
    """
    檢查並在條件滿足時觸發結算

    參數：
        db: SQLAlchemy Session
        oracle: RandomnessOracleClient
        now: 判斷時間（預設 utcnow）

    返回：
        新的 RandomnessRequest；條件不滿足時返回 None
    """
    now = now or utcnow()
    ready, _ = RoundManager.check_ready(db, now)
    if not ready:
        return None
    return RoundManager.trigger_conclusion(db, oracle, now=now)


def run_upkeep_tick(session_factory, oracle, payout, local_oracle_enabled: bool = False) -> None:
    """在獨立的 session 內跑一次 upkeep（給背景 thread 使用）"""
    from services.local_oracle_service import fulfill_pending_requests  # 避免 circular import

    db = session_factory()
    try:
        request = perform_upkeep(db, oracle)
        if request is not None:
            logger.info(f"Upkeep triggered conclusion with request {request.id}")
        if local_oracle_enabled:
            fulfill_pending_requests(db, oracle, payout)
    finally:
        db.close()


async def upkeep_loop(
    session_factory,
    oracle,
    payout,
    interval_seconds: float,
    local_oracle_enabled: bool = False
) -> None:
    """
    背景輪詢迴圈（由 FastAPI lifespan 啟動與取消）

    單次失敗只寫 log，不中斷迴圈
    """
    logger.info(f"Upkeep loop started (interval={interval_seconds}s)")
    while True:
        try:
            await asyncio.to_thread(
                run_upkeep_tick, session_factory, oracle, payout, local_oracle_enabled
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Upkeep tick failed: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)

"""
本地 oracle：開發環境用，代替外部亂數服務回呼

對每個 PENDING 請求產生亂數，透過 RandomnessOracleClient.deliver() 回傳，
和外部 oracle 走完全相同的入口。
"""
import secrets
from typing import Callable, List
import logging

from sqlalchemy.orm import Session

from core.exceptions import LotteryException

logger = logging.getLogger(__name__)


def random_word() -> int:
    return secrets.randbits(256)


def fulfill_pending_requests(
    db: Session,
    oracle,
    payout,
    word_source: Callable[[], int] = random_word
) -> List[str]:
    """
    回應所有 PENDING 的亂數請求

    參數：
        db: SQLAlchemy Session
        oracle: RandomnessOracleClient
        payout: PayoutExecutor
        word_source: 亂數來源（測試可替換）

    返回：
        這次選出的贏家列表

    注意：
        派彩失敗的請求會被記錄成 FAILED，這裡只寫 log
    """
    # deliver() 會 commit，先把 id 取出來
    pending = [(request.id, request.num_words) for request in oracle.pending_requests(db)]

    winners = []
    for request_id, num_words in pending:
        words = [word_source() for _ in range(num_words)]
        try:
            winners.append(oracle.deliver(db, request_id, words, payout))
        except LotteryException as e:
            logger.error(f"Local oracle failed to fulfill request {request_id}: {e}")

    return winners

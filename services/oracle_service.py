"""
Randomness Oracle Client：與外部亂數服務之間的邊界

兩階段協定：
1. request_random_words(): 以固定參數建立請求（PENDING），外部 relay 會來取
2. deliver(): oracle 稍後（另一個獨立的呼叫）帶著 request_id 回傳亂數

RandomnessRequest 表就是 request_id -> round 的對應表。
"""
from datetime import datetime
from functools import lru_cache
from typing import List, Optional, Sequence
import logging

from sqlalchemy.orm import Session

from database import Settings, get_settings, transactional
from models import Round, RandomnessRequest, RequestStatus, EventLog, utcnow
from core.locks import serialized, with_request_lock
from core.exceptions import (
    RandomnessRequestNotFound,
    RandomnessRequestAlreadyFulfilled,
    TransferFailed
)

logger = logging.getLogger(__name__)

# 每輪只需要一個亂數
NUM_WORDS = 1


class RandomnessOracleClient:
    """亂數 oracle 的邊界 adapter"""

    def __init__(
        self,
        key_hash: str,
        subscription_id: int,
        request_confirmations: int,
        callback_gas_limit: int
    ):
        self.key_hash = key_hash
        self.subscription_id = subscription_id
        self.request_confirmations = request_confirmations
        self.callback_gas_limit = callback_gas_limit

    @classmethod
    def from_settings(cls, settings: Settings) -> "RandomnessOracleClient":
        return cls(
            key_hash=settings.vrf_key_hash,
            subscription_id=settings.vrf_subscription_id,
            request_confirmations=settings.vrf_request_confirmations,
            callback_gas_limit=settings.vrf_callback_gas_limit
        )

    def request_random_words(self, db: Session, round_obj: Round) -> RandomnessRequest:
        """
        建立一個亂數請求（不 commit）

        參數：
            db: SQLAlchemy Session
            round_obj: 發出請求的 Round

        返回：
            PENDING 狀態的 RandomnessRequest（id 即 request_id）
        """
        request = RandomnessRequest(
            round_id=round_obj.id,
            status=RequestStatus.PENDING,
            key_hash=self.key_hash,
            subscription_id=self.subscription_id,
            request_confirmations=self.request_confirmations,
            callback_gas_limit=self.callback_gas_limit,
            num_words=NUM_WORDS
        )
        db.add(request)
        db.flush()  # 取得 request.id

        db.add(EventLog(
            round_id=round_obj.id,
            event_type="RANDOMNESS_REQUESTED",
            data={"request_id": request.id}
        ))
        db.flush()

        logger.info(
            f"Requested {NUM_WORDS} random word(s): request_id={request.id}, "
            f"confirmations={self.request_confirmations}, gas_limit={self.callback_gas_limit}"
        )
        return request

    def claim(
        self,
        db: Session,
        request_id: int,
        random_words: Sequence[int],
        now: datetime
    ) -> RandomnessRequest:
        """
        找出 request_id 對應的請求並標記為 FULFILLED（不 commit）

        異常：
            RandomnessRequestNotFound: 請求不存在
            RandomnessRequestAlreadyFulfilled: 請求已經處理過（FULFILLED 或 FAILED）
        """
        request = with_request_lock(request_id, db).first()
        if not request:
            raise RandomnessRequestNotFound(request_id)
        if request.status != RequestStatus.PENDING:
            raise RandomnessRequestAlreadyFulfilled(request_id, request.status)

        request.status = RequestStatus.FULFILLED
        request.random_words = [int(word) for word in random_words]
        request.fulfilled_at = now
        db.flush()
        return request

    def deliver(
        self,
        db: Session,
        request_id: int,
        random_words: Sequence[int],
        payout,
        now: Optional[datetime] = None
    ) -> str:
        """
        Oracle callback 的唯一入口

        流程：
        1. 交給 RoundManager.on_randomness()（整個結算是一個 transaction）
        2. 如果派彩失敗，結算已被 rollback；再另外記錄這個請求為 FAILED，
           亂數已被消耗，不能重送，回合停在 CALCULATING

        返回：
            贏家地址

        異常：
            RoundManager.on_randomness() 的所有異常
        """
        from core.round_manager import RoundManager  # 避免 circular import

        now = now or utcnow()
        try:
            return RoundManager.on_randomness(db, request_id, random_words, self, payout, now=now)
        except TransferFailed:
            self.record_failed_fulfillment(db, request_id, random_words, now)
            logger.warning(
                f"Payout failed for request {request_id}; round remains CALCULATING "
                f"with no further randomness request possible"
            )
            raise

    @staticmethod
    @serialized
    @transactional
    def record_failed_fulfillment(
        db: Session,
        request_id: int,
        random_words: Sequence[int],
        now: datetime
    ) -> None:
        request = with_request_lock(request_id, db).first()
        if not request or request.status != RequestStatus.PENDING:
            return
        request.status = RequestStatus.FAILED
        request.random_words = [int(word) for word in random_words]
        request.fulfilled_at = now

    @staticmethod
    def pending_requests(db: Session) -> List[RandomnessRequest]:
        """還沒被回呼的請求（給外部 relay 輪詢）"""
        return (
            db.query(RandomnessRequest)
            .filter(RandomnessRequest.status == RequestStatus.PENDING)
            .order_by(RandomnessRequest.id)
            .all()
        )


@lru_cache()
def get_oracle_client() -> RandomnessOracleClient:
    """FastAPI dependency"""
    return RandomnessOracleClient.from_settings(get_settings())

"""
Round Manager：管理彩池回合的完整生命週期

職責：
1. 初始化唯一的 Round
2. 參加（admission + stake 檢查）
3. 判斷是否可以結算、觸發結算（發出亂數請求）
4. 處理 oracle 回傳的亂數（選贏家、重置、派彩）

原則：
- 所有狀態變更經過 RoundStateMachine
- 每個對外操作是一個 transaction，並與其他操作互斥
- 結算順序：檢查 -> 本地狀態變更 -> 外部轉帳（最後）
"""
from datetime import datetime
from typing import Optional, Sequence, Tuple
import logging

from sqlalchemy.orm import Session

from database import Settings, transactional
from models import Round, RoundState, Entry, EventLog, RandomnessRequest, LOTTERY_ROUND_ID, utcnow
from core.state_machine import RoundStateMachine, ReadinessDiagnostic
from core.locks import serialized, with_round_lock
from core.exceptions import (
    LotteryNotInitialized,
    ConclusionNotReady,
    InvalidRandomWords
)
from services import entry_ledger_service

logger = logging.getLogger(__name__)


class RoundManager:
    """Round 生命週期管理器"""

    @staticmethod
    @serialized
    @transactional
    def initialize(db: Session, settings: Settings, now: Optional[datetime] = None) -> Round:
        """
        建立唯一的 Round（如果還不存在）

        stake 和 interval 從設定複製進來，之後不會再改變。
        已存在的 Round 原樣返回（重啟服務不會重置進行中的回合）。

        參數：
            db: SQLAlchemy Session
            settings: 服務設定
            now: 開始時間（預設 utcnow）

        返回：
            Round
        """
        round_obj = with_round_lock(LOTTERY_ROUND_ID, db).first()
        if round_obj:
            return round_obj

        round_obj = Round(
            id=LOTTERY_ROUND_ID,
            state=RoundState.OPEN,
            opened_at=now or utcnow(),
            interval_seconds=settings.round_interval_seconds,
            stake=settings.stake_amount,
            balance=0,
            completed_rounds=0
        )
        db.add(round_obj)
        db.flush()

        logger.info(
            f"Initialized lottery round: stake={settings.stake_amount}, "
            f"interval={settings.round_interval_seconds}s"
        )
        return round_obj

    @staticmethod
    def get_round(db: Session) -> Round:
        """
        取得 Round（不鎖定）

        異常：
            LotteryNotInitialized: Round 不存在
        """
        round_obj = db.query(Round).filter(Round.id == LOTTERY_ROUND_ID).first()
        if not round_obj:
            raise LotteryNotInitialized()
        return round_obj

    @staticmethod
    def _lock_round(db: Session) -> Round:
        round_obj = with_round_lock(LOTTERY_ROUND_ID, db).first()
        if not round_obj:
            raise LotteryNotInitialized()
        return round_obj

    @staticmethod
    @serialized
    @transactional
    def enter(db: Session, participant: str, amount: int) -> Entry:
        """
        參加這一輪

        參數：
            db: SQLAlchemy Session
            participant: 參加者地址
            amount: 支付金額

        返回：
            新建立的 Entry

        異常：
            InsufficientStake: amount < stake
            RoundNotOpen: 回合正在 CALCULATING
        """
        round_obj = RoundManager._lock_round(db)
        entry = entry_ledger_service.append_entry(db, round_obj, participant, amount)

        db.add(EventLog(
            round_id=round_obj.id,
            event_type="LOTTERY_ENTERED",
            data={"participant": participant, "amount": amount}
        ))

        logger.info(f"{participant} entered the lottery with {amount}")
        return entry

    @staticmethod
    def check_ready(db: Session, now: Optional[datetime] = None) -> Tuple[bool, ReadinessDiagnostic]:
        """
        唯讀：目前是否可以結算，以及診斷資訊

        任何自動化程式都可以定期輪詢這個函式
        """
        round_obj = RoundManager.get_round(db)
        count = entry_ledger_service.participant_count(db, round_obj.id)
        return RoundStateMachine.ready_to_conclude(round_obj, count, now or utcnow())

    @staticmethod
    @serialized
    @transactional
    def trigger_conclusion(db: Session, oracle, now: Optional[datetime] = None) -> RandomnessRequest:
        """
        觸發結算（任何人都可以呼叫）

        流程：
        1. 重新檢查四個結算條件
        2. 先把狀態切到 CALCULATING（阻擋第二個請求和新的參加）
        3. 再發出一個亂數請求

        參數：
            db: SQLAlchemy Session
            oracle: RandomnessOracleClient
            now: 判斷時間（預設 utcnow）

        返回：
            PENDING 的 RandomnessRequest

        異常：
            ConclusionNotReady: 條件不滿足（附帶診斷）；
                已在 CALCULATING 時 diagnostic.state 為 CALCULATING
        """
        round_obj = RoundManager._lock_round(db)
        count = entry_ledger_service.participant_count(db, round_obj.id)
        ready, diagnostic = RoundStateMachine.ready_to_conclude(
            round_obj, count, now or utcnow()
        )
        if not ready:
            raise ConclusionNotReady(diagnostic)

        RoundStateMachine.transition(db, round_obj, RoundState.CALCULATING)
        request = oracle.request_random_words(db, round_obj)

        logger.info(
            f"Conclusion triggered: request_id={request.id}, "
            f"balance={diagnostic.balance}, participants={diagnostic.participant_count}"
        )
        return request

    @staticmethod
    @serialized
    @transactional
    def on_randomness(
        db: Session,
        request_id: int,
        random_words: Sequence[int],
        oracle,
        payout,
        now: Optional[datetime] = None
    ) -> str:
        """
        處理 oracle 回傳的亂數（每個請求只會被呼叫一次）

        嚴格的三段順序：
        1. 檢查：request 對應（由 oracle client 負責）、亂數陣列不可為空
        2. 本地狀態：選出贏家、記錄贏家、切回 OPEN、清空 ledger、opened_at = now
        3. 外部互動（最後）：把整個彩池轉給贏家

        整段是一個 transaction：轉帳失敗時，2 的所有變更都會被 rollback，
        回合維持 CALCULATING。

        參數：
            db: SQLAlchemy Session
            request_id: 亂數請求 id
            random_words: oracle 回傳的亂數（只使用第一個）
            oracle: RandomnessOracleClient
            payout: PayoutExecutor
            now: 結算時間（預設 utcnow）

        返回：
            贏家地址

        異常：
            InvalidRandomWords: 亂數陣列為空
            RandomnessRequestNotFound / RandomnessRequestAlreadyFulfilled
            EmptyLedger: 名單為空
            TransferFailed: 派彩失敗
        """
        now = now or utcnow()

        # 1. 檢查
        if not random_words:
            raise InvalidRandomWords(f"Request {request_id} was fulfilled with no random words")
        request = oracle.claim(db, request_id, random_words, now)
        round_obj = with_round_lock(request.round_id, db).first()
        if not round_obj:
            raise LotteryNotInitialized()

        # 2. 本地狀態
        participants = entry_ledger_service.list_participants(db, round_obj.id)
        winner = entry_ledger_service.winner_at(participants, int(random_words[0]))

        round_obj.recent_winner = winner
        RoundStateMachine.transition(db, round_obj, RoundState.OPEN)
        entry_ledger_service.reset_entries(db, round_obj.id)
        round_obj.opened_at = now
        round_obj.completed_rounds += 1
        db.flush()

        # 3. 外部互動
        prize = round_obj.balance
        payout.pay(db, round_obj, winner, prize)

        db.add(EventLog(
            round_id=round_obj.id,
            event_type="WINNER_PICKED",
            data={
                "winner": winner,
                "prize": prize,
                "request_id": request.id,
                "participant_count": len(participants)
            }
        ))

        logger.info(
            f"Winner picked: {winner} won {prize} "
            f"(request_id={request.id}, participants={len(participants)})"
        )
        return winner

"""
Round 狀態機：集中管理所有狀態轉換與判斷條件

狀態：
- OPEN: 接受參加，可以被檢查是否該結算
- CALCULATING: 拒絕參加，等待 oracle 回傳亂數

唯一合法路徑：OPEN -> CALCULATING -> OPEN
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Tuple
import logging

from sqlalchemy.orm import Session

from models import Round, RoundState, EventLog
from core.exceptions import RoundNotOpen, InvalidStateTransition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadinessDiagnostic:
    """結算條件的診斷資訊（回傳給呼叫者，不寫 log）"""
    balance: int
    participant_count: int
    state: RoundState


class RoundStateMachine:
    """Round 狀態機"""

    TRANSITIONS = {
        RoundState.OPEN: {RoundState.CALCULATING},
        RoundState.CALCULATING: {RoundState.OPEN},
    }

    @staticmethod
    def admission(round_obj: Round) -> None:
        """
        參加前的狀態檢查（金額檢查由 entry ledger 負責）

        異常：
            RoundNotOpen: 回合狀態不是 OPEN
        """
        if round_obj.state != RoundState.OPEN:
            raise RoundNotOpen(round_obj.state)

    @staticmethod
    def ready_to_conclude(
        round_obj: Round,
        participant_count: int,
        now: datetime
    ) -> Tuple[bool, ReadinessDiagnostic]:
        """
        判斷是否可以結算（純函式）

        四個條件必須同時成立：
        1. 距離 opened_at 已經過 interval_seconds
        2. 狀態是 OPEN
        3. 彩池金額 > 0
        4. 參加人數 > 0

        參數：
            round_obj: Round
            participant_count: 目前 ledger 長度
            now: 判斷用的時間

        返回：
            (ready, ReadinessDiagnostic)
        """
        elapsed = (now - round_obj.opened_at).total_seconds()
        time_passed = elapsed >= round_obj.interval_seconds
        is_open = round_obj.state == RoundState.OPEN
        has_balance = round_obj.balance > 0
        has_players = participant_count > 0

        diagnostic = ReadinessDiagnostic(
            balance=round_obj.balance,
            participant_count=participant_count,
            state=round_obj.state
        )
        return (time_passed and is_open and has_balance and has_players), diagnostic

    @staticmethod
    def can_transition(current: RoundState, target: RoundState) -> bool:
        return target in RoundStateMachine.TRANSITIONS.get(current, set())

    @staticmethod
    def transition(db: Session, round_obj: Round, target: RoundState) -> Round:
        """
        執行狀態轉換並記錄 ROUND_STATE_CHANGED 事件

        不會 commit，由外層 transaction 處理

        異常：
            InvalidStateTransition: 不在合法路徑上
        """
        current = round_obj.state
        if not RoundStateMachine.can_transition(current, target):
            raise InvalidStateTransition(
                f"Cannot transition round from {current.value} to {target.value}"
            )

        round_obj.state = target
        db.add(EventLog(
            round_id=round_obj.id,
            event_type="ROUND_STATE_CHANGED",
            data={"from": current.value, "to": target.value}
        ))
        db.flush()

        logger.info(f"Round state changed: {current.value} -> {target.value}")
        return round_obj

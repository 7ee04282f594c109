"""
Entry Ledger 服務：目前這一輪的參加名單與彩池金額

名單依插入順序排列（Entry.id），中獎 index 就是對這個順序計算。
同一個地址可以參加多次，中獎機率按次數等比增加。
"""
from typing import List, Sequence

from sqlalchemy.orm import Session

from models import Round, Entry, MAX_AMOUNT
from core.state_machine import RoundStateMachine
from core.exceptions import InsufficientStake, AmountOutOfRange, EmptyLedger


def append_entry(db: Session, round_obj: Round, participant: str, amount: int) -> Entry:
    """
    新增一筆參加紀錄

    流程：
    1. 檢查金額 >= stake
    2. 委派 RoundStateMachine.admission() 檢查狀態
    3. 新增 Entry，彩池金額加上 amount

    參數：
        db: SQLAlchemy Session
        round_obj: 已鎖定的 Round
        participant: 參加者地址
        amount: 支付金額

    返回：
        新建立的 Entry

    異常：
        InsufficientStake: amount < stake（不論回合狀態）
        RoundNotOpen: 回合不是 OPEN
        AmountOutOfRange: 加入後彩池超過 uint256 上限
    """
    if amount < round_obj.stake:
        raise InsufficientStake(amount, round_obj.stake)

    RoundStateMachine.admission(round_obj)

    if round_obj.balance + amount > MAX_AMOUNT:
        raise AmountOutOfRange(round_obj.balance + amount, MAX_AMOUNT)

    entry = Entry(round_id=round_obj.id, participant=participant, amount=amount)
    db.add(entry)
    round_obj.balance += amount

    # Flush 但不 commit（讓外層 transaction 處理）
    db.flush()
    return entry


def list_participants(db: Session, round_id: int) -> List[str]:
    """依插入順序回傳參加者地址"""
    rows = (
        db.query(Entry.participant)
        .filter(Entry.round_id == round_id)
        .order_by(Entry.id)
        .all()
    )
    return [row.participant for row in rows]


def participant_count(db: Session, round_id: int) -> int:
    return db.query(Entry).filter(Entry.round_id == round_id).count()


def reset_entries(db: Session, round_id: int) -> int:
    """
    清空這一輪的參加名單

    彩池金額不在這裡處理（由派彩轉出）

    返回：
        刪除的筆數
    """
    deleted = (
        db.query(Entry)
        .filter(Entry.round_id == round_id)
        .delete(synchronize_session=False)
    )
    db.flush()
    return deleted


def winner_at(participants: Sequence[str], random_value: int) -> str:
    """
    由亂數決定贏家：participants[random_value mod 人數]

    同樣的名單與亂數永遠得到同樣的結果

    異常：
        EmptyLedger: 名單為空（正常流程下不會發生，結算前已檢查人數 > 0）

    範例：
        winner_at(["a", "b", "c"], 7) -> "b"
    """
    if not participants:
        raise EmptyLedger()
    return participants[random_value % len(participants)]

"""
並發控制工具

系統的執行模型是「單一序列化帳本」：enter / trigger / oracle callback
每個操作都必須完整執行完，中間不能穿插其他操作。

兩層保護：
1. serialized：process 內的全域可重入鎖（SQLite 不支援 row lock）
2. with_round_lock：PostgreSQL 的 SELECT ... FOR UPDATE（悲觀鎖）
"""
from sqlalchemy.orm import Session, Query
from functools import wraps
import threading

from models import Round, RandomnessRequest

_ledger_lock = threading.RLock()


def serialized(func):
    """
    讓被包住的操作與其他所有 serialized 操作互斥

    使用方式（必須放在 @transactional 外層，commit 完成後才釋放鎖）：
        @staticmethod
        @serialized
        @transactional
        def enter(db: Session, ...):
            ...

    注意：
        - 使用 RLock，同一個 thread 可以重複進入（例如 deliver -> on_randomness）
        - 只保護同一個 process；多 process 部署需依賴 with_round_lock
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        with _ledger_lock:
            return func(*args, **kwargs)

    return wrapper


def with_round_lock(round_id: int, db: Session) -> Query:
    """
    鎖定 Round（行級鎖）

    使用場景：
    - 參加、結算、亂數回呼時修改 Round 狀態或彩池金額
    - 需要確保 Round 在整個 transaction 期間不被其他請求修改

    範例：
        round_obj = with_round_lock(LOTTERY_ROUND_ID, db).first()
        if not round_obj:
            raise LotteryNotInitialized()

    參數：
        round_id: Round 的 id
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 或 .one() 來取得結果）
    """
    return db.query(Round).filter(
        Round.id == round_id
    ).with_for_update(nowait=False)


def with_request_lock(request_id: int, db: Session) -> Query:
    """
    鎖定一個亂數請求（防止同一個請求被重複回呼）

    參數：
        request_id: RandomnessRequest 的 id
        db: SQLAlchemy Session

    返回：
        Query object
    """
    return db.query(RandomnessRequest).filter(
        RandomnessRequest.id == request_id
    ).with_for_update(nowait=False)

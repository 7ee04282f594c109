"""
資料模型

- Round: 唯一的一輪彩池狀態（建立一次，每輪結束時原地重置）
- Entry: 目前這一輪的參加紀錄（插入順序決定中獎 index）
- RandomnessRequest: 亂數請求與回應的對應表
- Account: 派彩收款帳戶
- EventLog: 對外可觀察的事件
"""
from sqlalchemy import (
    Column, Integer, Numeric, String, DateTime, Boolean, ForeignKey, JSON, Enum
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator
from datetime import datetime, timezone
from decimal import Decimal
import enum

from database import Base

# 系統只有一輪彩池，永遠使用同一列
LOTTERY_ROUND_ID = 1

# 金額上限（uint256）
MAX_AMOUNT = 2 ** 256 - 1


def utcnow() -> datetime:
    """目前的 UTC 時間（naive，與資料庫欄位一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Uint256(TypeDecorator):
    """
    無號 256 位元整數欄位（金額以最小單位 wei 計）

    - PostgreSQL: NUMERIC(78, 0)
    - 其他資料庫（SQLite）: 十進位字串，避免 64 位元 INTEGER 溢位和 REAL 精度損失

    Python 端一律是 int
    """
    impl = String(78)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(78, 0))
        return dialect.type_descriptor(String(78))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = int(value)
        if value < 0 or value > MAX_AMOUNT:
            raise ValueError(f"Amount {value} is outside the uint256 range")
        if dialect.name == "postgresql":
            return Decimal(value)
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class RoundState(str, enum.Enum):
    OPEN = "OPEN"
    CALCULATING = "CALCULATING"


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    FULFILLED = "FULFILLED"
    FAILED = "FAILED"


class Round(Base):
    __tablename__ = "rounds"

    id = Column(Integer, primary_key=True)
    state = Column(Enum(RoundState), nullable=False, default=RoundState.OPEN)
    opened_at = Column(DateTime, nullable=False, default=utcnow)
    interval_seconds = Column(Integer, nullable=False)
    stake = Column(Uint256, nullable=False)
    balance = Column(Uint256, nullable=False, default=0)

    recent_winner = Column(String, nullable=True)
    completed_rounds = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    entries = relationship("Entry", back_populates="round", order_by="Entry.id")


class Entry(Base):
    __tablename__ = "entries"

    # autoincrement id 即插入順序
    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False, index=True)
    participant = Column(String, nullable=False, index=True)
    amount = Column(Uint256, nullable=False)
    created_at = Column(DateTime, default=utcnow)

    round = relationship("Round", back_populates="entries")


class RandomnessRequest(Base):
    __tablename__ = "randomness_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=False, index=True)
    status = Column(Enum(RequestStatus), nullable=False, default=RequestStatus.PENDING)

    key_hash = Column(String, nullable=False)
    subscription_id = Column(Integer, nullable=False)
    request_confirmations = Column(Integer, nullable=False)
    callback_gas_limit = Column(Integer, nullable=False)
    num_words = Column(Integer, nullable=False)

    random_words = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    fulfilled_at = Column(DateTime, nullable=True)


class Account(Base):
    __tablename__ = "accounts"

    address = Column(String, primary_key=True)
    balance = Column(Uint256, nullable=False, default=0)
    # False 代表收款方拒絕轉帳（派彩會失敗）
    accepts_transfers = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)


class EventLog(Base):
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    round_id = Column(Integer, ForeignKey("rounds.id"), nullable=True, index=True)
    event_type = Column(String, nullable=False, index=True)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, default=utcnow)

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from pydantic import Field
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    服務設定（啟動時載入一次，之後不可變更）

    彩池相關：
    - stake_amount: 每次參加需要的固定金額
    - round_interval_seconds: 一輪最短開放時間

    Oracle 連線參數：
    - vrf_key_hash: request class（gas lane）
    - vrf_request_confirmations: 確認深度
    - vrf_callback_gas_limit: callback 資源預算
    """
    database_url: str = "sqlite:///./lottery.db"

    stake_amount: int = Field(default=10_000_000_000_000_000, gt=0, le=2 ** 256 - 1)
    round_interval_seconds: int = Field(default=30, ge=0)

    vrf_key_hash: str = "0x787d74caea10b2b357790d5b5247c2f63d1d91572a9846f780606e4d953677ae"
    vrf_subscription_id: int = 0
    vrf_request_confirmations: int = Field(default=3, ge=1)
    vrf_callback_gas_limit: int = Field(default=500_000, gt=0)
    oracle_callback_token: Optional[str] = None

    automation_enabled: bool = False
    automation_interval_seconds: float = Field(default=5.0, gt=0)
    local_oracle_enabled: bool = False

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        frozen = True


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()

# SQLite 需要特殊設定：connect_args={"check_same_thread": False}
# 這允許多執行緒存取同一個 SQLite 連線（FastAPI 的多執行緒環境需要）
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency：提供 Database Session

    使用 yield 確保 session 在請求結束後會被關閉
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def transactional(func):
    """
    Transaction decorator：確保資料庫操作的原子性

    使用方式：
        @transactional
        def some_business_logic(db: Session, ...):
            # 所有 DB 操作都在一個 transaction 內
            entry = Entry(...)
            db.add(entry)
            # 不需要手動 commit，decorator 會處理

    如果函式內發生異常：
        - 自動 rollback（包含已 flush 的狀態變更和事件）
        - 異常會被重新拋出（讓上層處理）

    注意：
        - 第一個參數必須是 db: Session
        - 不要在函式內手動 commit（decorator 會處理）
        - 被包住的函式不可以再呼叫另一個 @transactional 函式，
          否則內層的 commit 會讓外層失去 rollback 的能力
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        # 找出 db session（可能在 args 或 kwargs）
        db = None
        if args and isinstance(args[0], Session):
            db = args[0]
        elif 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper

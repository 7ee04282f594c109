"""
派彩服務：把整個彩池一次轉給贏家

轉帳是結算流程中唯一的「外部互動」，必須放在所有本地狀態變更之後。
轉帳失敗時拋出 TransferFailed，由外層 transaction 整個 rollback。
"""
from functools import lru_cache
import logging

from sqlalchemy.orm import Session

from models import Account, Round, MAX_AMOUNT
from core.exceptions import TransferFailed

logger = logging.getLogger(__name__)


class PayoutExecutor:
    """單次轉帳執行器"""

    def pay(self, db: Session, round_obj: Round, recipient: str, amount: int) -> Account:
        """
        從彩池轉出 amount 給 recipient

        參數：
            db: SQLAlchemy Session
            round_obj: 彩池所屬的 Round（已鎖定）
            recipient: 收款地址
            amount: 轉帳金額（整個彩池）

        返回：
            收款帳戶

        異常：
            TransferFailed: 收款方拒絕轉帳，或彩池金額不足
        """
        if amount > round_obj.balance:
            raise TransferFailed(recipient, amount)

        account = db.query(Account).filter(Account.address == recipient).first()
        if account is None:
            account = Account(address=recipient, balance=0, accepts_transfers=True)
            db.add(account)
            db.flush()

        if not account.accepts_transfers:
            logger.warning(f"Recipient {recipient} refused transfer of {amount}")
            raise TransferFailed(recipient, amount)

        if account.balance + amount > MAX_AMOUNT:
            logger.warning(f"Transfer of {amount} would overflow the balance of {recipient}")
            raise TransferFailed(recipient, amount)

        round_obj.balance -= amount
        account.balance += amount
        db.flush()

        logger.info(f"Transferred {amount} to {recipient}")
        return account


@lru_cache()
def get_payout_executor() -> PayoutExecutor:
    """FastAPI dependency"""
    return PayoutExecutor()

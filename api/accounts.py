"""
Account API Endpoints

職責：
1. 查詢派彩帳戶餘額
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from models import Account
from schemas import AccountResponse

router = APIRouter(prefix="/api/accounts", tags=["accounts"])
logger = logging.getLogger(__name__)


@router.get("/{address}", response_model=AccountResponse)
def get_account(address: str, db: Session = Depends(get_db)):
    """
    取得帳戶資訊

    從未收過派彩的地址視為餘額 0
    """
    try:
        account = db.query(Account).filter(Account.address == address).first()
        if not account:
            return AccountResponse(address=address, balance=0, accepts_transfers=True)

        return AccountResponse(
            address=account.address,
            balance=account.balance,
            accepts_transfers=account.accepts_transfers
        )

    except Exception as e:
        logger.error(f"Failed to get account: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

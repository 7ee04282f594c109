"""
Oracle API Endpoints

職責：
1. 列出等待回呼的亂數請求（外部 oracle relay 輪詢）
2. 接收 oracle 回傳的亂數（callback）
"""
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
import logging
import secrets

from database import get_db, get_settings
from schemas import RandomnessRequestResponse, FulfillRequest, FulfillResponse
from core.exceptions import (
    LotteryNotInitialized,
    RandomnessRequestNotFound,
    RandomnessRequestAlreadyFulfilled,
    InvalidRandomWords,
    EmptyLedger,
    TransferFailed,
    InvalidStateTransition,
    OnlyCoordinatorCanFulfill
)
from services.oracle_service import get_oracle_client
from services.payout_service import get_payout_executor

router = APIRouter(prefix="/api/oracle", tags=["oracle"])
logger = logging.getLogger(__name__)


def verify_oracle_token(token: Optional[str]) -> None:
    """
    確認呼叫者是 oracle（比對 X-Oracle-Token header）

    沒有設定 oracle_callback_token 時不檢查（本地開發）

    異常：
        OnlyCoordinatorCanFulfill: token 不符
    """
    expected = get_settings().oracle_callback_token
    if expected is None:
        return
    if token is None or not secrets.compare_digest(token, expected):
        raise OnlyCoordinatorCanFulfill("Only the randomness oracle can fulfill requests")


@router.get("/requests/pending", response_model=list[RandomnessRequestResponse])
def list_pending_requests(db: Session = Depends(get_db), oracle=Depends(get_oracle_client)):
    """
    列出所有 PENDING 的亂數請求

    外部 oracle relay 輪詢這個 endpoint，依參數產生亂數後呼叫 /fulfill
    """
    try:
        return [
            RandomnessRequestResponse(
                request_id=request.id,
                status=request.status,
                key_hash=request.key_hash,
                subscription_id=request.subscription_id,
                request_confirmations=request.request_confirmations,
                callback_gas_limit=request.callback_gas_limit,
                num_words=request.num_words,
                created_at=request.created_at
            )
            for request in oracle.pending_requests(db)
        ]

    except Exception as e:
        logger.error(f"Failed to list pending requests: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/fulfill", response_model=FulfillResponse)
def fulfill_random_words(
    fulfill_data: FulfillRequest,
    x_oracle_token: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    oracle=Depends(get_oracle_client),
    payout=Depends(get_payout_executor)
):
    """
    Oracle callback：回傳亂數並完成結算

    流程：
    1. 確認呼叫者是 oracle
    2. 對應 request_id，選出贏家、重置回合、派彩（一個 transaction）

    返回：
        - request_id
        - winner: 贏家地址

    注意：
        派彩失敗時整個結算 rollback，請求被標記為 FAILED，回合停在 CALCULATING
    """
    try:
        verify_oracle_token(x_oracle_token)

        logger.info(
            f"Oracle fulfilling request {fulfill_data.request_id} "
            f"with {len(fulfill_data.random_words)} word(s)"
        )
        winner = oracle.deliver(db, fulfill_data.request_id, fulfill_data.random_words, payout)
        return FulfillResponse(request_id=fulfill_data.request_id, winner=winner)

    except OnlyCoordinatorCanFulfill as e:
        raise HTTPException(status_code=403, detail=str(e))
    except RandomnessRequestNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidRandomWords as e:
        raise HTTPException(status_code=422, detail=str(e))
    except (RandomnessRequestAlreadyFulfilled, TransferFailed, EmptyLedger, InvalidStateTransition) as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LotteryNotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to fulfill randomness: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

"""
Lottery API Endpoints

重點：
1. 所有業務邏輯集中在 RoundManager
2. 任何人都可以呼叫 /ready 和 /trigger（自動化程式定期輪詢）
3. 結算條件不滿足時，409 回應帶完整診斷資訊
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

import logging

from database import get_db
from schemas import (
    EnterRequest,
    EnterResponse,
    StakeResponse,
    RoundStateResponse,
    ParticipantsResponse,
    ReadinessDiagnosticResponse,
    CheckReadyResponse,
    TriggerResponse,
    WinnerResponse,
    WinnerHistoryItem,
    EventResponse
)
from core.round_manager import RoundManager
from core.exceptions import (
    LotteryNotInitialized,
    InsufficientStake,
    AmountOutOfRange,
    RoundNotOpen,
    ConclusionNotReady
)
from services import entry_ledger_service
from services.history_service import get_winner_history, get_recent_events
from services.oracle_service import get_oracle_client

router = APIRouter(prefix="/api/lottery", tags=["lottery"])
logger = logging.getLogger(__name__)


def _diagnostic_response(diagnostic) -> ReadinessDiagnosticResponse:
    return ReadinessDiagnosticResponse(
        balance=diagnostic.balance,
        participant_count=diagnostic.participant_count,
        state=diagnostic.state
    )


@router.get("/state", response_model=RoundStateResponse)
def get_state(db: Session = Depends(get_db)):
    """
    取得目前回合的完整狀態
    """
    try:
        round_obj = RoundManager.get_round(db)
        return RoundStateResponse(
            state=round_obj.state,
            stake=round_obj.stake,
            balance=round_obj.balance,
            participant_count=entry_ledger_service.participant_count(db, round_obj.id),
            interval_seconds=round_obj.interval_seconds,
            opened_at=round_obj.opened_at,
            recent_winner=round_obj.recent_winner,
            completed_rounds=round_obj.completed_rounds
        )

    except LotteryNotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get lottery state: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/stake", response_model=StakeResponse)
def get_stake(db: Session = Depends(get_db)):
    try:
        return StakeResponse(stake=RoundManager.get_round(db).stake)

    except LotteryNotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get stake: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/enter", response_model=EnterResponse)
def enter_lottery(enter_data: EnterRequest, db: Session = Depends(get_db)):
    """
    參加這一輪

    前置條件：
    - amount >= stake（否則 400）
    - 回合狀態是 OPEN（否則 409）

    返回：
        - entry_id: 參加紀錄 id
        - balance / participant_count: 參加後的彩池狀態
    """
    try:
        entry = RoundManager.enter(db, enter_data.participant, enter_data.amount)
        round_obj = RoundManager.get_round(db)

        return EnterResponse(
            entry_id=entry.id,
            participant=entry.participant,
            amount=entry.amount,
            balance=round_obj.balance,
            participant_count=entry_ledger_service.participant_count(db, round_obj.id)
        )

    except (InsufficientStake, AmountOutOfRange) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except RoundNotOpen as e:
        raise HTTPException(status_code=409, detail=str(e))
    except LotteryNotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to enter lottery: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/participants", response_model=ParticipantsResponse)
def get_participants(db: Session = Depends(get_db)):
    """依參加順序列出目前這一輪的參加者（重複參加會重複出現）"""
    try:
        round_obj = RoundManager.get_round(db)
        return ParticipantsResponse(
            participants=entry_ledger_service.list_participants(db, round_obj.id)
        )

    except LotteryNotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to list participants: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/ready", response_model=CheckReadyResponse)
def check_ready(db: Session = Depends(get_db)):
    """
    唯讀：目前是否可以結算

    返回：
        - ready: 四個條件是否都成立
        - diagnostic: balance / participant_count / state
    """
    try:
        ready, diagnostic = RoundManager.check_ready(db)
        return CheckReadyResponse(ready=ready, diagnostic=_diagnostic_response(diagnostic))

    except LotteryNotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to check readiness: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/trigger", response_model=TriggerResponse)
def trigger_conclusion(db: Session = Depends(get_db), oracle=Depends(get_oracle_client)):
    """
    觸發結算（任何人都可以呼叫）

    效果：
    - 狀態轉換 OPEN -> CALCULATING
    - 發出一個亂數請求，等待 oracle 回呼 /api/oracle/fulfill

    返回：
        - request_id: 亂數請求 id
    """
    try:
        request = RoundManager.trigger_conclusion(db, oracle)
        return TriggerResponse(request_id=request.id)

    except ConclusionNotReady as e:
        raise HTTPException(
            status_code=409,
            detail={
                "message": "Conclusion not ready",
                **_diagnostic_response(e.diagnostic).model_dump(mode="json")
            }
        )
    except LotteryNotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to trigger conclusion: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/winner", response_model=WinnerResponse)
def get_recent_winner(db: Session = Depends(get_db)):
    try:
        return WinnerResponse(recent_winner=RoundManager.get_round(db).recent_winner)

    except LotteryNotInitialized as e:
        raise HTTPException(status_code=503, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to get recent winner: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/winners", response_model=list[WinnerHistoryItem])
def get_winners(limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)):
    """歷史贏家（最新的在前）"""
    try:
        return [WinnerHistoryItem(**item) for item in get_winner_history(db, limit)]

    except Exception as e:
        logger.error(f"Failed to get winner history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/events", response_model=list[EventResponse])
def get_events(limit: int = Query(50, ge=1, le=500), db: Session = Depends(get_db)):
    try:
        return [
            EventResponse(
                id=event.id,
                event_type=event.event_type,
                data=event.data or {},
                created_at=event.created_at
            )
            for event in get_recent_events(db, limit)
        ]

    except Exception as e:
        logger.error(f"Failed to get events: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

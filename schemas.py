from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from models import RoundState, RequestStatus, MAX_AMOUNT


# ============ Lottery ============

class EnterRequest(BaseModel):
    participant: str = Field(..., min_length=1, max_length=128)
    amount: int = Field(..., ge=0, le=MAX_AMOUNT)


class EnterResponse(BaseModel):
    entry_id: int
    participant: str
    amount: int
    balance: int
    participant_count: int


class StakeResponse(BaseModel):
    stake: int


class RoundStateResponse(BaseModel):
    state: RoundState
    stake: int
    balance: int
    participant_count: int
    interval_seconds: int
    opened_at: datetime
    recent_winner: Optional[str]
    completed_rounds: int


class ParticipantsResponse(BaseModel):
    participants: List[str]


class ReadinessDiagnosticResponse(BaseModel):
    balance: int
    participant_count: int
    state: RoundState


class CheckReadyResponse(BaseModel):
    ready: bool
    diagnostic: ReadinessDiagnosticResponse


class TriggerResponse(BaseModel):
    request_id: int


class WinnerResponse(BaseModel):
    recent_winner: Optional[str]


class WinnerHistoryItem(BaseModel):
    winner: Optional[str]
    prize: int
    request_id: Optional[int]
    participant_count: int
    picked_at: Optional[datetime]


class EventResponse(BaseModel):
    id: int
    event_type: str
    data: Dict[str, Any]
    created_at: Optional[datetime]


# ============ Oracle ============

class RandomnessRequestResponse(BaseModel):
    request_id: int
    status: RequestStatus
    key_hash: str
    subscription_id: int
    request_confirmations: int
    callback_gas_limit: int
    num_words: int
    created_at: Optional[datetime]


class FulfillRequest(BaseModel):
    request_id: int
    random_words: List[int]


class FulfillResponse(BaseModel):
    request_id: int
    winner: str


# ============ Account ============

class AccountResponse(BaseModel):
    address: str
    balance: int
    accepts_transfers: bool

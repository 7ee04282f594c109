"""
Lottery history service.

Builds the winner history and the recent event feed from the event log so
clients can show past rounds without keeping their own records.
"""
from typing import List, Dict, Any

from sqlalchemy.orm import Session

from models import EventLog


def get_winner_history(db: Session, limit: int = 50) -> List[Dict[str, Any]]:
    """
    Return completed rounds, newest first.

    Each entry carries the winner, the prize and the randomness request that
    decided it.
    """
    rows = (
        db.query(EventLog)
        .filter(EventLog.event_type == "WINNER_PICKED")
        .order_by(EventLog.id.desc())
        .limit(limit)
        .all()
    )

    history: List[Dict[str, Any]] = []
    for event in rows:
        data = event.data or {}
        history.append({
            "winner": data.get("winner"),
            "prize": data.get("prize", 0),
            "request_id": data.get("request_id"),
            "participant_count": data.get("participant_count", 0),
            "picked_at": event.created_at,
        })
    return history


def get_recent_events(db: Session, limit: int = 50) -> List[EventLog]:
    return (
        db.query(EventLog)
        .order_by(EventLog.id.desc())
        .limit(limit)
        .all()
    )

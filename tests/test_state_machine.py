from datetime import timedelta

import pytest

from core.exceptions import InvalidStateTransition, RoundNotOpen
from core.state_machine import RoundStateMachine
from models import EventLog, Round, RoundState
from tests.conftest import INTERVAL, STAKE, T0


def make_round(state=RoundState.OPEN, balance=STAKE):
    return Round(
        id=1,
        state=state,
        opened_at=T0,
        interval_seconds=INTERVAL,
        stake=STAKE,
        balance=balance
    )


def test_admission_open():
    RoundStateMachine.admission(make_round())


def test_admission_calculating():
    with pytest.raises(RoundNotOpen):
        RoundStateMachine.admission(make_round(state=RoundState.CALCULATING))


def test_ready_when_all_conditions_hold():
    ready, diagnostic = RoundStateMachine.ready_to_conclude(
        make_round(balance=300), 3, T0 + timedelta(seconds=INTERVAL)
    )
    assert ready is True
    assert diagnostic.balance == 300
    assert diagnostic.participant_count == 3
    assert diagnostic.state == RoundState.OPEN


@pytest.mark.parametrize(
    "state, balance, count, elapsed",
    [
        (RoundState.OPEN, STAKE, 1, INTERVAL - 1),
        (RoundState.CALCULATING, STAKE, 1, INTERVAL * 10),
        (RoundState.OPEN, 0, 1, INTERVAL * 10),
        (RoundState.OPEN, STAKE, 0, INTERVAL * 10),
    ],
    ids=["interval-not-elapsed", "calculating", "empty-pool", "no-participants"],
)
def test_not_ready_when_any_condition_fails(state, balance, count, elapsed):
    ready, diagnostic = RoundStateMachine.ready_to_conclude(
        make_round(state=state, balance=balance), count, T0 + timedelta(seconds=elapsed)
    )
    assert ready is False
    assert diagnostic.state == state
    assert diagnostic.balance == balance
    assert diagnostic.participant_count == count


def test_valid_transitions():
    assert RoundStateMachine.can_transition(RoundState.OPEN, RoundState.CALCULATING)
    assert RoundStateMachine.can_transition(RoundState.CALCULATING, RoundState.OPEN)
    assert not RoundStateMachine.can_transition(RoundState.OPEN, RoundState.OPEN)
    assert not RoundStateMachine.can_transition(RoundState.CALCULATING, RoundState.CALCULATING)


def test_transition_records_event(db, lottery):
    RoundStateMachine.transition(db, lottery, RoundState.CALCULATING)
    db.commit()

    event = db.query(EventLog).filter(EventLog.event_type == "ROUND_STATE_CHANGED").one()
    assert event.data == {"from": "OPEN", "to": "CALCULATING"}


def test_invalid_transition_rejected(db, lottery):
    with pytest.raises(InvalidStateTransition):
        RoundStateMachine.transition(db, lottery, RoundState.OPEN)
    assert lottery.state == RoundState.OPEN

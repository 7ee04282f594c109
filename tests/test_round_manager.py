import warnings
from datetime import timedelta

import pytest

from core.exceptions import (
    ConclusionNotReady,
    InvalidRandomWords,
    RandomnessRequestAlreadyFulfilled,
    RandomnessRequestNotFound,
    RoundNotOpen,
    TransferFailed
)
from core.round_manager import RoundManager
from models import Account, EventLog, RandomnessRequest, RequestStatus, RoundState, utcnow
from services import entry_ledger_service
from tests.conftest import INTERVAL, STAKE, T0, FailingPayout

T_READY = T0 + timedelta(seconds=INTERVAL)
T_FULFILL = T_READY + timedelta(minutes=5)


def enter_three(db):
    for participant in ["0xA", "0xB", "0xC"]:
        RoundManager.enter(db, participant, STAKE)


def test_initialize_is_idempotent(db, settings, lottery):
    again = RoundManager.initialize(db, settings, now=T0 + timedelta(days=1))
    assert again.id == lottery.id
    assert again.opened_at == T0
    assert again.stake == STAKE
    assert again.interval_seconds == INTERVAL


def test_three_participant_round(db, lottery, oracle, payout):
    enter_three(db)

    ready, diagnostic = RoundManager.check_ready(db, T_READY)
    assert ready is True
    assert diagnostic.balance == 300
    assert diagnostic.participant_count == 3

    request = RoundManager.trigger_conclusion(db, oracle, now=T_READY)
    request_id = request.id
    assert RoundManager.get_round(db).state == RoundState.CALCULATING

    winner = oracle.deliver(db, request_id, [7], payout, now=T_FULFILL)
    assert winner == "0xB"

    round_obj = RoundManager.get_round(db)
    assert round_obj.state == RoundState.OPEN
    assert round_obj.balance == 0
    assert round_obj.opened_at == T_FULFILL
    assert round_obj.recent_winner == "0xB"
    assert round_obj.completed_rounds == 1
    assert entry_ledger_service.participant_count(db, round_obj.id) == 0

    account = db.query(Account).filter(Account.address == "0xB").one()
    assert account.balance == 300

    stored = db.query(RandomnessRequest).filter(RandomnessRequest.id == request_id).one()
    assert stored.status == RequestStatus.FULFILLED
    assert stored.random_words == [7]
    assert stored.fulfilled_at == T_FULFILL

    event = db.query(EventLog).filter(EventLog.event_type == "WINNER_PICKED").one()
    assert event.data["winner"] == "0xB"
    assert event.data["prize"] == 300


def test_trigger_before_interval_elapsed(db, lottery, oracle):
    enter_three(db)

    with pytest.raises(ConclusionNotReady) as exc_info:
        RoundManager.trigger_conclusion(db, oracle, now=T_READY - timedelta(seconds=1))

    assert exc_info.value.diagnostic.participant_count == 3
    assert RoundManager.get_round(db).state == RoundState.OPEN
    assert db.query(RandomnessRequest).count() == 0


def test_trigger_without_participants(db, lottery, oracle):
    with pytest.raises(ConclusionNotReady) as exc_info:
        RoundManager.trigger_conclusion(db, oracle, now=T_READY + timedelta(hours=1))

    diagnostic = exc_info.value.diagnostic
    assert diagnostic.balance == 0
    assert diagnostic.participant_count == 0
    assert diagnostic.state == RoundState.OPEN


def test_second_trigger_rejected_while_calculating(db, lottery, oracle):
    enter_three(db)
    RoundManager.trigger_conclusion(db, oracle, now=T_READY)

    with pytest.raises(ConclusionNotReady) as exc_info:
        RoundManager.trigger_conclusion(db, oracle, now=T_READY + timedelta(hours=1))

    assert exc_info.value.diagnostic.state == RoundState.CALCULATING
    assert db.query(RandomnessRequest).count() == 1


def test_enter_rejected_while_calculating(db, lottery, oracle):
    enter_three(db)
    RoundManager.trigger_conclusion(db, oracle, now=T_READY)

    with pytest.raises(RoundNotOpen):
        RoundManager.enter(db, "0xD", STAKE)
    with pytest.raises(RoundNotOpen):
        RoundManager.enter(db, "0xD", STAKE * 100)

    assert entry_ledger_service.participant_count(db, lottery.id) == 3


def test_next_round_accepts_entries(db, lottery, oracle, payout):
    enter_three(db)
    request_id = RoundManager.trigger_conclusion(db, oracle, now=T_READY).id
    oracle.deliver(db, request_id, [7], payout, now=T_FULFILL)

    RoundManager.enter(db, "0xD", STAKE)

    ready, _ = RoundManager.check_ready(db, T_FULFILL + timedelta(seconds=INTERVAL - 1))
    assert ready is False
    ready, _ = RoundManager.check_ready(db, T_FULFILL + timedelta(seconds=INTERVAL))
    assert ready is True


def test_payout_failure_rolls_back_conclusion(db, lottery, oracle):
    enter_three(db)
    request_id = RoundManager.trigger_conclusion(db, oracle, now=T_READY).id

    with pytest.raises(TransferFailed):
        oracle.deliver(db, request_id, [7], FailingPayout(), now=T_FULFILL)

    round_obj = RoundManager.get_round(db)
    assert round_obj.state == RoundState.CALCULATING
    assert round_obj.balance == 300
    assert round_obj.recent_winner is None
    assert round_obj.opened_at == T0
    assert round_obj.completed_rounds == 0
    assert entry_ledger_service.list_participants(db, round_obj.id) == ["0xA", "0xB", "0xC"]
    assert db.query(EventLog).filter(EventLog.event_type == "WINNER_PICKED").count() == 0


def test_payout_failure_leaves_round_stuck(db, lottery, oracle, payout):
    enter_three(db)
    request_id = RoundManager.trigger_conclusion(db, oracle, now=T_READY).id

    with pytest.raises(TransferFailed):
        oracle.deliver(db, request_id, [7], FailingPayout(), now=T_FULFILL)

    stored = db.query(RandomnessRequest).filter(RandomnessRequest.id == request_id).one()
    assert stored.status == RequestStatus.FAILED
    assert stored.random_words == [7]

    # 亂數已被消耗：不能重送，也不能再發新的請求
    with pytest.raises(RandomnessRequestAlreadyFulfilled):
        oracle.deliver(db, request_id, [7], payout, now=T_FULFILL)
    with pytest.raises(ConclusionNotReady):
        RoundManager.trigger_conclusion(db, oracle, now=T_FULFILL)
    assert RoundManager.get_round(db).state == RoundState.CALCULATING


def test_recipient_refusing_transfer(db, lottery, oracle, payout):
    db.add(Account(address="0xB", balance=0, accepts_transfers=False))
    db.commit()
    enter_three(db)
    request_id = RoundManager.trigger_conclusion(db, oracle, now=T_READY).id

    with pytest.raises(TransferFailed) as exc_info:
        oracle.deliver(db, request_id, [7], payout, now=T_FULFILL)

    assert exc_info.value.recipient == "0xB"
    assert exc_info.value.amount == 300
    assert db.query(Account).filter(Account.address == "0xB").one().balance == 0
    assert RoundManager.get_round(db).balance == 300


def test_unknown_request(db, lottery, oracle, payout):
    enter_three(db)
    RoundManager.trigger_conclusion(db, oracle, now=T_READY)

    with pytest.raises(RandomnessRequestNotFound):
        oracle.deliver(db, 999, [7], payout, now=T_FULFILL)
    assert RoundManager.get_round(db).state == RoundState.CALCULATING


def test_empty_random_words(db, lottery, oracle, payout):
    enter_three(db)
    request_id = RoundManager.trigger_conclusion(db, oracle, now=T_READY).id

    with pytest.raises(InvalidRandomWords):
        oracle.deliver(db, request_id, [], payout, now=T_FULFILL)

    stored = db.query(RandomnessRequest).filter(RandomnessRequest.id == request_id).one()
    assert stored.status == RequestStatus.PENDING
    assert RoundManager.get_round(db).state == RoundState.CALCULATING


def test_duplicate_fulfillment_rejected(db, lottery, oracle, payout):
    enter_three(db)
    request_id = RoundManager.trigger_conclusion(db, oracle, now=T_READY).id
    oracle.deliver(db, request_id, [7], payout, now=T_FULFILL)

    with pytest.raises(RandomnessRequestAlreadyFulfilled):
        oracle.deliver(db, request_id, [8], payout, now=T_FULFILL)
    assert RoundManager.get_round(db).recent_winner == "0xB"


def test_default_clock_is_naive_utc_without_deprecation(db, lottery, oracle, payout):
    assert utcnow().tzinfo is None

    with warnings.catch_warnings():
        warnings.filterwarnings("error", message=".*utcnow.*", category=DeprecationWarning)
        enter_three(db)
        ready, _ = RoundManager.check_ready(db)
        assert ready is True
        request = RoundManager.trigger_conclusion(db, oracle)
        assert oracle.deliver(db, request.id, [1], payout) == "0xB"

    assert RoundManager.get_round(db).opened_at > T0

"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一處理
"""


class LotteryException(Exception):
    """所有彩池異常的基類"""
    pass


class LotteryNotInitialized(LotteryException):
    """彩池尚未初始化（Round 不存在）"""
    def __init__(self):
        super().__init__("Lottery round has not been initialized")


# ============ Entry 相關異常 ============

class InsufficientStake(LotteryException):
    """參加金額低於設定的 stake"""
    def __init__(self, amount, stake):
        self.amount = amount
        self.stake = stake
        super().__init__(f"Entry amount {amount} is below the required stake {stake}")


class AmountOutOfRange(LotteryException):
    """金額超出 uint256 範圍（單筆金額或加總後的彩池）"""
    def __init__(self, amount, limit):
        self.amount = amount
        self.limit = limit
        super().__init__(f"Amount {amount} exceeds the maximum pool amount {limit}")


class RoundNotOpen(LotteryException):
    """回合不是 OPEN（正在等待亂數），拒絕參加"""
    def __init__(self, state):
        self.state = state
        super().__init__(f"Round is not open (state: {getattr(state, 'value', state)})")


class EmptyLedger(LotteryException):
    """沒有任何參加者，無法選出贏家"""
    def __init__(self):
        super().__init__("Cannot pick a winner from an empty ledger")


# ============ 結算相關異常 ============

class ConclusionNotReady(LotteryException):
    """結算條件未滿足（附帶完整診斷資訊，讓呼叫者決定何時重試）"""
    def __init__(self, diagnostic):
        self.diagnostic = diagnostic
        super().__init__(
            f"Conclusion not ready (balance={diagnostic.balance}, "
            f"participants={diagnostic.participant_count}, "
            f"state={diagnostic.state.value})"
        )


class TransferFailed(LotteryException):
    """派彩轉帳被收款方拒絕"""
    def __init__(self, recipient, amount):
        self.recipient = recipient
        self.amount = amount
        super().__init__(f"Transfer of {amount} to {recipient} failed")


# ============ 狀態轉換異常 ============

class InvalidStateTransition(LotteryException):
    """非法的狀態轉換"""
    pass


# ============ Oracle 相關異常 ============

class RandomnessRequestNotFound(LotteryException):
    """亂數請求不存在"""
    def __init__(self, request_id):
        self.request_id = request_id
        super().__init__(f"Randomness request {request_id} not found")


class RandomnessRequestAlreadyFulfilled(LotteryException):
    """亂數請求已經處理過（每個請求只能回呼一次）"""
    def __init__(self, request_id, status):
        self.request_id = request_id
        self.status = status
        super().__init__(
            f"Randomness request {request_id} is already {getattr(status, 'value', status)}"
        )


class InvalidRandomWords(LotteryException):
    """Oracle 回傳的亂數陣列不合法"""
    pass


class OnlyCoordinatorCanFulfill(LotteryException):
    """只有 oracle 可以呼叫 callback"""
    pass

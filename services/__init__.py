"""
服務層

這個 package 包含不負責狀態轉換的邏輯與外部邊界：
- EntryLedgerService：參加名單與選出贏家
- PayoutService：派彩轉帳
- OracleService：亂數 oracle 的請求與回呼
- UpkeepService / LocalOracleService：自動結算與本地 oracle
- HistoryService：歷史贏家與事件
"""

"""
核心業務邏輯層

這個 package 包含所有核心業務邏輯，包括：
- 狀態機：集中管理回合的狀態轉換與結算條件
- Manager：管理 Round 的生命週期（參加、結算、亂數回呼）
- Locks：並發控制工具
"""

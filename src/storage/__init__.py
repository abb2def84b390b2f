"""持久化: 提醒 JSON 快照与用户注册表 (SQLite)"""

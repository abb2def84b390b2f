"""管理 / 健康检查 HTTP 接口"""

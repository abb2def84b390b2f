"""消息编排"""

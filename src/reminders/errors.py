"""提醒子系统的错误类型

面向用户的错误(解析失败 / 序号越界)由命令层渲染为文本, 不会把异常原样抛给用户。
"""

__all__ = ["ReminderError", "ParseError", "PositionOutOfRange", "PersistenceError", "DeliveryError"]


class ReminderError(Exception):
    pass


class ParseError(ReminderError):
    """文本中找不到可识别的时间或重复规则"""

    def __init__(self, text: str) -> None:
        super().__init__(f"找不到时间表达式: {text!r}")
        self.text = text


class PositionOutOfRange(ReminderError):
    def __init__(self, position: int, count: int) -> None:
        super().__init__(f"序号越界: position={position}, count={count}")
        self.position = position
        self.count = count


class PersistenceError(ReminderError):
    pass


class DeliveryError(ReminderError):
    pass

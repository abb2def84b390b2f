from abc import ABC, abstractmethod

from logger import logger

__all__ = ["DeliveryGateway", "LogOnlyGateway"]


class DeliveryGateway(ABC):
    """调度器投递提醒所用的出口

    send 成功返回即视为已送达; 失败时抛出异常 (通常是 DeliveryError), 调度器只记录日志, 不会重试。
    """

    @abstractmethod
    async def send(self, owner: str, text: str) -> None:
        pass


class LogOnlyGateway(DeliveryGateway):
    """没有启用任何消息通道时使用, 只把提醒写进日志"""

    async def send(self, owner: str, text: str) -> None:
        logger.warning(f"没有可用的消息通道, 提醒仅记录到日志: owner={owner}, text={text!r}")

import asyncio

from commands.router import CommandRouter
from datamodel import IncomingMessage, OutgoingMessage
from events import Bus, E
from logger import logger

__all__ = ["Orchestrator"]


class OwnerWorker:
    """单个用户的消息队列, 同一用户的命令按到达顺序逐条处理"""

    def __init__(self, owner: str, router: CommandRouter, bus: Bus) -> None:
        self.owner = owner
        self.router = router
        self.bus = bus
        self.unread_queue: asyncio.Queue[IncomingMessage] = asyncio.Queue()

    async def run_loop(self) -> None:
        logger.info(f"用户 {self.owner} 的 worker 已启动")
        try:
            while True:
                msg = await self.unread_queue.get()
                try:
                    await self.process(msg)
                except Exception as e:
                    logger.error(f"用户 {self.owner} 消息处理失败", exc_info=e)
                finally:
                    self.unread_queue.task_done()
        except asyncio.CancelledError:
            logger.info(f"用户 {self.owner} 的 worker 已停止")
            raise

    def enqueue(self, msg: IncomingMessage) -> None:
        self.unread_queue.put_nowait(msg)
        logger.trace(f"用户 {self.owner} 消息入队: queue_size={self.unread_queue.qsize()}")

    async def process(self, msg: IncomingMessage) -> None:
        reply = self.router.dispatch(msg.owner, msg.content)
        if reply is None:
            logger.debug(f"用户 {msg.owner} 的消息不是提醒命令, 忽略")
            return

        self.bus.emit(
            E.IO_SEND_MESSAGE,
            message=OutgoingMessage(
                channel_type=msg.channel_type,
                owner=msg.owner,
                content=reply,
                channel_context=msg.channel_context,
                metadata=msg.metadata,
            ),
        )


class Orchestrator:
    def __init__(self, router: CommandRouter, bus: Bus) -> None:
        self.router = router
        self.bus = bus
        self._workers: dict[str, OwnerWorker] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def register(self) -> None:
        @self.bus.on(E.IO_MESSAGE_RECEIVED)
        async def handle_incoming_message(message: IncomingMessage) -> None:
            logger.info(f"收到来自用户 {message.owner} 的消息，准备入队")
            self.enqueue(message)

    def get_or_create(self, owner: str) -> OwnerWorker:
        worker = self._workers.get(owner)
        if worker is None:
            worker = OwnerWorker(owner, self.router, self.bus)
            self._workers[owner] = worker
        return worker

    def enqueue(self, msg: IncomingMessage) -> None:
        worker = self.get_or_create(msg.owner)
        task = self._tasks.get(msg.owner)
        if task is None or task.done():
            self._tasks[msg.owner] = asyncio.create_task(worker.run_loop(), name=f"owner-worker-{msg.owner}")
        worker.enqueue(msg)

    async def join(self) -> None:
        """等待所有已入队的消息处理完毕"""
        for worker in list(self._workers.values()):
            await worker.unread_queue.join()

    async def shutdown(self) -> None:
        if not self._tasks:
            return

        logger.info("正在关闭 Orchestrator...")
        tasks = list(self._tasks.items())
        for _, task in tasks:
            task.cancel()

        results = await asyncio.gather(*(task for _, task in tasks), return_exceptions=True)
        for (owner, _), result in zip(tasks, results):
            if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
                logger.error(f"关闭用户 worker 时发生异常: owner={owner}, error={result}")

        self._tasks.clear()
        self._workers.clear()
        logger.info("Orchestrator 已关闭")

    async def main_loop(self, shutdown_event: asyncio.Event) -> None:
        logger.info("Orchestrator 主循环已启动")
        await shutdown_event.wait()
        await self.shutdown()

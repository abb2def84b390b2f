import asyncio

import pytest

from core.orchestrator import Orchestrator, OwnerWorker
from datamodel import ChannelType, IncomingMessage
from events import E


def _incoming(owner: str, content: str) -> IncomingMessage:
    return IncomingMessage(
        channel_type=ChannelType.TELEGRAM_BOT_POLLING,
        owner=owner,
        content=content,
        metadata={"channel_chat_id": 42},
    )


async def _settle(orchestrator: Orchestrator) -> None:
    # 让总线调度的协程处理器先跑起来, 再等待队列清空
    for _ in range(5):
        await asyncio.sleep(0)
    await orchestrator.join()


@pytest.mark.asyncio
async def test_incoming_command_produces_reply(router, bus, repository):
    replies = []
    bus.on(E.IO_SEND_MESSAGE)(lambda message: replies.append(message))
    orchestrator = Orchestrator(router, bus)
    orchestrator.register()

    bus.emit(E.IO_MESSAGE_RECEIVED, message=_incoming("1", '/newreminder "jam 14:30 minum air"'))
    bus.emit(E.IO_MESSAGE_RECEIVED, message=_incoming("1", "/listreminder"))
    await _settle(orchestrator)

    assert [m.content for m in replies] == [
        "✅ Reminder set for 14:30:\nminum air",
        "📋 Your reminders:\n\n1. 14:30 - minum air",
    ]
    assert replies[0].owner == "1"
    assert replies[0].metadata == {"channel_chat_id": 42}

    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_messages_from_different_owners_get_separate_workers(router, bus):
    replies = []
    bus.on(E.IO_SEND_MESSAGE)(lambda message: replies.append((message.owner, message.content)))
    orchestrator = Orchestrator(router, bus)
    orchestrator.register()

    bus.emit(E.IO_MESSAGE_RECEIVED, message=_incoming("1", '/newreminder "jam 10 a"'))
    bus.emit(E.IO_MESSAGE_RECEIVED, message=_incoming("2", "/listreminder"))
    await _settle(orchestrator)

    assert sorted(owner for owner, _ in replies) == ["1", "2"]
    assert dict(replies)["2"].startswith("📭 No reminders set")

    await orchestrator.shutdown()


@pytest.mark.asyncio
async def test_non_command_message_gets_no_reply(router, bus):
    replies = []
    bus.on(E.IO_SEND_MESSAGE)(lambda message: replies.append(message))
    worker = OwnerWorker("1", router, bus)

    await worker.process(_incoming("1", "halo apa kabar"))

    assert replies == []

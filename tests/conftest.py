from datetime import datetime, timedelta

import pytest

from channels.base import DeliveryGateway
from commands.reminder import ReminderCommands
from commands.router import CommandRouter
from events import Bus
from reminders.errors import DeliveryError
from reminders.parser import TimeExpressionParser
from reminders.scheduler import ReminderScheduler
from storage.reminder import ReminderRepository

# 2026-10-19 是星期一
NOW = datetime(2026, 10, 19, 9, 0, 0)


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingGateway(DeliveryGateway):
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    async def send(self, owner: str, text: str) -> None:
        self.sent.append((owner, text))


class FailingGateway(DeliveryGateway):
    """对 failing_owners 中的用户投递失败, 其余正常记录"""

    def __init__(self, failing_owners: set[str]) -> None:
        self.failing_owners = failing_owners
        self.sent: list[tuple[str, str]] = []
        self.attempts = 0

    async def send(self, owner: str, text: str) -> None:
        self.attempts += 1
        if owner in self.failing_owners:
            raise DeliveryError(f"投递失败: {owner}")
        self.sent.append((owner, text))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "data" / "reminders.json"


@pytest.fixture
def repository(store_path, clock) -> ReminderRepository:
    repo = ReminderRepository(store_path, clock)
    repo.load()
    return repo


@pytest.fixture
def bus() -> Bus:
    return Bus()


@pytest.fixture
def parser() -> TimeExpressionParser:
    return TimeExpressionParser()


@pytest.fixture
def offline_parser() -> TimeExpressionParser:
    """不使用通用日期解析器, 结果完全由内置规则决定"""
    return TimeExpressionParser(use_general_resolver=False)


@pytest.fixture
def commands(offline_parser, repository, clock, bus) -> ReminderCommands:
    return ReminderCommands(offline_parser, repository, clock, bus)


@pytest.fixture
def router(commands) -> CommandRouter:
    return CommandRouter(commands)


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def scheduler(repository, gateway, clock, bus) -> ReminderScheduler:
    return ReminderScheduler(repository, gateway, clock, tick_seconds=60, delivery_timeout_seconds=1, bus=bus)

"""自然语言时间表达式解析

支持英文与印尼语混写的提醒文本, 例如:
    "jam 14:30 minum air"            -> 一次性, 今天(或明天) 14:30
    "remind me in 2 hours to stretch" -> 一次性, 相对偏移
    "bayar pajak 25/12 jam 10"        -> 一次性, 12 月 25 日 10:00
    "setiap 2 jam break"              -> 每 2 小时
    "setiap hari jam 06.00 olahraga"  -> 每天 06:00
    "every monday at 9 standup"       -> 每周一 09:00

匹配器按固定优先级依次尝试, 第一个命中即返回。循环规则排在一次性规则之前,
这样 "setiap hari jam 06.00" 里的时钟时间会被当作每日锚点, 而不是一次性时间。
一句话里包含多个提醒的拆分由命令层负责, 这里一次只解析一段。
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from dateparser.search import search_dates

from datamodel import OneOff, RecurrenceKind, Recurring, Schedule
from logger import logger
from reminders.errors import ParseError

__all__ = ["TimeExpressionParser", "ExpressionKind", "ParsedExpression", "roll_forward", "DEFAULT_TASK_TEXT"]

DEFAULT_TASK_TEXT = "Reminder"

Span = Tuple[int, int]


class ExpressionKind(str, Enum):
    ONE_OFF_CLOCK_TIME = "one_off_clock_time"
    RELATIVE_OFFSET = "relative_offset"
    GENERAL_DATE_TIME = "general_date_time"
    RECURRING_INTERVAL = "recurring_interval"
    RECURRING_DAILY = "recurring_daily"
    RECURRING_WEEKLY = "recurring_weekly"


@dataclass(frozen=True)
class ParsedExpression:
    kind: ExpressionKind
    schedule: Schedule
    task_text: str


@dataclass(frozen=True)
class _Match:
    kind: ExpressionKind
    schedule: Schedule
    spans: Tuple[Span, ...]


class _Unresolvable(Exception):
    """命中了规则但得不到有效时间, 例如每日规则缺少时钟时间; 整段解析失败"""


# ---------------- 词表 ----------------
_UNIT_MS = {
    "detik": 1_000, "second": 1_000, "seconds": 1_000, "sec": 1_000, "secs": 1_000,
    "menit": 60_000, "minute": 60_000, "minutes": 60_000, "min": 60_000, "mins": 60_000,
    "jam": 3_600_000, "hour": 3_600_000, "hours": 3_600_000,
    "hari": 86_400_000, "day": 86_400_000, "days": 86_400_000,
}
_UNIT = r"(?:detik|seconds?|secs?|menit|minutes?|mins?|jam|hours?|hari|days?)"

_WEEKDAYS = {
    "monday": 0, "tuesday": 1, "wednesday": 2, "thursday": 3, "friday": 4, "saturday": 5, "sunday": 6,
    "senin": 0, "selasa": 1, "rabu": 2, "kamis": 3, "jumat": 4, "jum'at": 4, "sabtu": 5,
}
# "minggu" 单独出现时是"周"的意思, 只有写成 "hari minggu" 才当作星期日
_WEEKDAY = "(?:" + "|".join(sorted(_WEEKDAYS, key=len, reverse=True)) + ")"

_DAY_OFFSETS = {
    "today": 0, "hari ini": 0, "tonight": 0, "malam ini": 0,
    "tomorrow": 1, "besok": 1,
    "lusa": 2, "day after tomorrow": 2,
}

_RECURRENCE_WORD = r"(?:every|setiap|tiap)"

_WEEKLY_RE = re.compile(
    rf"\b{_RECURRENCE_WORD}\s+(?:hari\s+)?(?:(?P<weekday>{_WEEKDAY})|(?<=hari\s)(?P<sunday>minggu))\b",
    re.IGNORECASE,
)
_DAILY_RE = re.compile(
    rf"\b(?:{_RECURRENCE_WORD}\s*day|daily|{_RECURRENCE_WORD}\s+hari)\b(?!\s*(?:ini|{_WEEKDAY}|minggu)\b)",
    re.IGNORECASE,
)
_INTERVAL_RE = re.compile(
    rf"\b{_RECURRENCE_WORD}\s+(?:(?P<count>\d+)\s*)?(?P<unit>{_UNIT})\b",
    re.IGNORECASE,
)
_CLOCK_RE = re.compile(
    r"(?<![\w:./-])"
    r"(?:(?P<marker>at|jam|pukul|pkl)\.?\s+)?"
    r"(?P<hour>\d{1,2})(?:[:.](?P<minute>\d{2}))?"
    r"(?![\w:/-]|\.\d)"
    r"(?!\s*(?:detik|seconds?|secs?|menit|minutes?|mins?|jam|hours?|days?|lagi)\b)"
    r"(?!\s*hari\b(?!\s+ini\b))",
    re.IGNORECASE,
)
_DAY_QUALIFIER_RE = re.compile(
    r"\b(?:day\s+after\s+tomorrow|tomorrow|today|tonight|hari\s+ini|malam\s+ini|besok|lusa)\b",
    re.IGNORECASE,
)
_RELATIVE_RE = re.compile(
    rf"\b(?:(?:in|dalam)\s+(?P<count_in>\d+|an?|se)\s*(?P<unit_in>{_UNIT})\b(?:\s+lagi\b)?"
    rf"|(?P<count_after>\d+)\s*(?P<unit_after>{_UNIT})\s+(?:lagi|later|from\s+now)\b)",
    re.IGNORECASE,
)

# 一次性时间旁边的日期: 星期名或 DD/MM[/YYYY]
_ON_WEEKDAY_RE = re.compile(
    rf"\b(?:(?:on|next|hari)\s+)?(?:(?P<weekday>{_WEEKDAY})|(?<=hari\s)(?P<sunday>minggu))\b",
    re.IGNORECASE,
)
_DATE_RE = re.compile(
    r"(?<![\w:./-])(?:(?:on|tanggal|tgl)\.?\s+)?"
    r"(?P<day>\d{1,2})[/-](?P<month>\d{1,2})(?:[/-](?P<year>\d{4}|\d{2}))?"
    r"(?![\w:/-])",
    re.IGNORECASE,
)

# 残余文本清理
_LEADING_REQUEST_RE = re.compile(
    r"^\s*(?:[/.!]?(?:remind\s+me|ingetin|ingatkan|set\s+(?:a\s+)?reminder|atur\s+(?:alarm|pengingat)|tolong|please)\b"
    r"(?:\s+(?:aku|saya|gue|me)\b)?\s*)+",
    re.IGNORECASE,
)
_EDGE_CONNECTORS = r"(?:to|at|on|in|for|about|untuk|pada|buat|soal|jam|pukul|dan|and)"
_LEADING_CONNECTOR_RE = re.compile(rf"^(?:{_EDGE_CONNECTORS}\b|[,;:\-])\s*", re.IGNORECASE)
_TRAILING_CONNECTOR_RE = re.compile(rf"\s*(?:\b{_EDGE_CONNECTORS}|[,;:\-])$", re.IGNORECASE)


def roll_forward(candidate: datetime, now: datetime) -> datetime:
    """不晚于 now 的一次性时间按整天向后推, 直到严格晚于 now"""
    if candidate > now:
        return candidate
    return candidate + timedelta(days=(now - candidate).days + 1)


def _mask(text: str, spans: Sequence[Span]) -> str:
    chars = list(text)
    for start, end in spans:
        chars[start:end] = " " * (end - start)
    return "".join(chars)


def _clean_task_text(text: str, spans: Sequence[Span]) -> str:
    residual = re.sub(r"\s+", " ", _mask(text, spans)).strip()
    residual = _LEADING_REQUEST_RE.sub("", residual)

    previous = None
    while previous != residual:
        previous = residual
        residual = _LEADING_CONNECTOR_RE.sub("", residual).strip()
        residual = _TRAILING_CONNECTOR_RE.sub("", residual).strip()
        residual = _LEADING_REQUEST_RE.sub("", residual).strip()

    residual = re.sub(r"\s+", " ", residual).strip()
    return residual or DEFAULT_TASK_TEXT


def _find_clock(text: str, allow_bare: bool = True) -> Optional[Tuple[int, int, Span]]:
    """找出文本中的时钟时间, 带标记词或分钟的候选优先于裸数字"""
    fallback = None
    for match in _CLOCK_RE.finditer(text):
        hour = int(match.group("hour"))
        minute = int(match.group("minute") or 0)
        if hour > 23 or minute > 59:
            continue
        candidate = (hour, minute, match.span())
        if match.group("marker") or match.group("minute"):
            return candidate
        if allow_bare and fallback is None:
            fallback = candidate
    return fallback


def _anchor_time(text: str, recurrence_span: Span) -> Tuple[int, int, Span]:
    found = _find_clock(_mask(text, [recurrence_span]))
    if found is None:
        raise _Unresolvable()
    return found


def _resolve_date(match: re.Match, hour: int, minute: int, now: datetime) -> datetime:
    """DD/MM[/YYYY] 加时钟时间; 不写年份且已过去时指明年, 写明的过去日期无效"""
    raw_year = match.group("year")
    year = now.year if raw_year is None else int(raw_year) + (2000 if len(raw_year) == 2 else 0)
    try:
        candidate = datetime(year, int(match.group("month")), int(match.group("day")), hour, minute)
        if candidate <= now and raw_year is None:
            candidate = candidate.replace(year=year + 1)
    except ValueError as e:
        raise _Unresolvable() from e
    if candidate <= now:
        raise _Unresolvable()
    return candidate


class TimeExpressionParser:
    def __init__(self, languages: Sequence[str] = ("en", "id"), use_general_resolver: bool = True):
        self.languages = list(languages)
        self.use_general_resolver = use_general_resolver
        self._matchers: List[Callable[[datetime, str], Optional[_Match]]] = [
            self._match_weekly,
            self._match_daily,
            self._match_interval,
            self._match_clock_time,
            self._match_relative_offset,
        ]
        if use_general_resolver:
            self._matchers.append(self._match_general)

    def parse(self, now: datetime, text: str) -> Optional[ParsedExpression]:
        """解析一段提醒文本, 找不到时间表达式时返回 None"""
        text = text.strip()
        if not text:
            return None

        for matcher in self._matchers:
            try:
                match = matcher(now, text)
            except _Unresolvable:
                logger.debug(f"命中规则但无法得到有效时间: {text!r}")
                return None
            if match is not None:
                task_text = _clean_task_text(text, match.spans)
                logger.trace(f"解析提醒文本: {text!r} -> {match.kind.value}, {match.schedule}, task={task_text!r}")
                return ParsedExpression(kind=match.kind, schedule=match.schedule, task_text=task_text)

        logger.debug(f"未找到时间表达式: {text!r}")
        return None

    def require(self, now: datetime, text: str) -> ParsedExpression:
        parsed = self.parse(now, text)
        if parsed is None:
            raise ParseError(text)
        return parsed

    # ---------------- 循环规则 ----------------
    def _match_weekly(self, now: datetime, text: str) -> Optional[_Match]:
        match = _WEEKLY_RE.search(text)
        if match is None:
            return None
        weekday = 6 if match.group("sunday") else _WEEKDAYS[match.group("weekday").lower()]
        hour, minute, clock_span = _anchor_time(text, match.span())
        schedule = Recurring(kind=RecurrenceKind.WEEKLY, weekday=weekday, anchor_hour=hour, anchor_minute=minute)
        return _Match(ExpressionKind.RECURRING_WEEKLY, schedule, (match.span(), clock_span))

    def _match_daily(self, now: datetime, text: str) -> Optional[_Match]:
        match = _DAILY_RE.search(text)
        if match is None:
            return None
        hour, minute, clock_span = _anchor_time(text, match.span())
        schedule = Recurring(kind=RecurrenceKind.DAILY, anchor_hour=hour, anchor_minute=minute)
        return _Match(ExpressionKind.RECURRING_DAILY, schedule, (match.span(), clock_span))

    def _match_interval(self, now: datetime, text: str) -> Optional[_Match]:
        match = _INTERVAL_RE.search(text)
        if match is None:
            return None
        count = int(match.group("count") or 1)
        if count < 1:
            raise _Unresolvable()
        interval_ms = count * _UNIT_MS[match.group("unit").lower()]
        schedule = Recurring(kind=RecurrenceKind.INTERVAL, interval_ms=interval_ms)
        return _Match(ExpressionKind.RECURRING_INTERVAL, schedule, (match.span(),))

    # ---------------- 一次性规则 ----------------
    def _match_clock_time(self, now: datetime, text: str) -> Optional[_Match]:
        # 有相对偏移时裸数字属于任务内容, 例如 "in 10 minutes buy 2 eggs"
        found = _find_clock(text, allow_bare=_RELATIVE_RE.search(text) is None)
        if found is None:
            return None
        hour, minute, clock_span = found
        spans = [clock_span]
        rest = _mask(text, spans)

        date_match = _DATE_RE.search(rest)
        weekday_match = _ON_WEEKDAY_RE.search(rest)
        qualifier = _DAY_QUALIFIER_RE.search(rest)
        if date_match is not None:
            spans.append(date_match.span())
            trigger_at = _resolve_date(date_match, hour, minute, now)
        elif weekday_match is not None:
            spans.append(weekday_match.span())
            weekday = 6 if weekday_match.group("sunday") else _WEEKDAYS[weekday_match.group("weekday").lower()]
            trigger_at = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
            trigger_at += timedelta(days=(weekday - now.weekday()) % 7)
            if trigger_at <= now:
                trigger_at += timedelta(weeks=1)
        else:
            day_offset = 0
            if qualifier is not None:
                day_offset = _DAY_OFFSETS[re.sub(r"\s+", " ", qualifier.group(0).lower())]
                spans.append(qualifier.span())
            candidate = (now + timedelta(days=day_offset)).replace(hour=hour, minute=minute, second=0, microsecond=0)
            trigger_at = roll_forward(candidate, now)

        return _Match(ExpressionKind.ONE_OFF_CLOCK_TIME, OneOff(trigger_at=trigger_at), tuple(spans))

    def _match_relative_offset(self, now: datetime, text: str) -> Optional[_Match]:
        for match in _RELATIVE_RE.finditer(text):
            raw_count = (match.group("count_in") or match.group("count_after")).lower()
            count = 1 if raw_count in ("a", "an", "se") else int(raw_count)
            if count < 1:
                continue
            unit = (match.group("unit_in") or match.group("unit_after")).lower()
            trigger_at = now + timedelta(milliseconds=count * _UNIT_MS[unit])
            schedule = OneOff(trigger_at=roll_forward(trigger_at, now))
            return _Match(ExpressionKind.RELATIVE_OFFSET, schedule, (match.span(),))
        return None

    def _match_general(self, now: datetime, text: str) -> Optional[_Match]:
        results = search_dates(
            text,
            languages=self.languages,
            settings={
                "PREFER_DATES_FROM": "future",
                "RELATIVE_BASE": now,
                "RETURN_AS_TIMEZONE_AWARE": False,
            },
        )
        if not results:
            return None

        for phrase, resolved in results:
            # 过短的片段多为误识别, 例如单个字母或缩写
            if len(phrase.strip()) < 3:
                continue
            start = text.find(phrase)
            if start < 0:
                continue
            trigger_at = roll_forward(resolved.replace(microsecond=0), now)
            return _Match(ExpressionKind.GENERAL_DATE_TIME, OneOff(trigger_at=trigger_at), ((start, start + len(phrase)),))
        return None

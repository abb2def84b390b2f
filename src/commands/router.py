import re
from typing import Optional

from commands.help import render_help
from commands.reminder import (
    DELETE_REMINDER_USAGE,
    EDIT_REMINDER_USAGE,
    NEW_REMINDER_USAGE,
    ReminderCommands,
)
from logger import logger

__all__ = ["CommandRouter", "GENERIC_ERROR_TEXT"]

GENERIC_ERROR_TEXT = "❌ Error processing your request. Please try again."

# 命令前缀可选 / . !, 群聊里的 Telegram 命令可能带 @botname 后缀
_PREFIX = r"^\s*[/.!]?"
_BOT_SUFFIX = r"(?:@\w+)?"
_QUOTED = r"[\"“”](?P<text>.+?)[\"“”]"

_COMMAND_HEAD_RE = re.compile(
    rf"{_PREFIX}(?P<name>newreminder|listreminders?|editreminder|delreminder|help){_BOT_SUFFIX}(?=\s|$)",
    re.IGNORECASE,
)
_NEW_RE = re.compile(rf"{_PREFIX}newreminder{_BOT_SUFFIX}\s+{_QUOTED}\s*$", re.IGNORECASE | re.DOTALL)
_EDIT_RE = re.compile(
    rf"{_PREFIX}editreminder{_BOT_SUFFIX}\s+(?P<position>\d+)\s+{_QUOTED}\s*$",
    re.IGNORECASE | re.DOTALL,
)
_DELETE_RE = re.compile(rf"{_PREFIX}delreminder{_BOT_SUFFIX}\s+(?P<arg>\d+|all|semua)\s*$", re.IGNORECASE)
_LIST_RE = re.compile(rf"{_PREFIX}listreminders?{_BOT_SUFFIX}\s*$", re.IGNORECASE)
_HELP_RE = re.compile(rf"{_PREFIX}help{_BOT_SUFFIX}\s*$", re.IGNORECASE)

# 不带命令的自然语言提醒, 例如 "ingetin jam 14.00 meeting"
_NATURAL_RE = re.compile(
    rf"{_PREFIX}(?:ingetin|ingatkan|remind\s+me|set\s+(?:a\s+)?reminder|setiap|tiap|every)\b",
    re.IGNORECASE,
)


class CommandRouter:
    def __init__(self, commands: ReminderCommands):
        self.commands = commands

    def dispatch(self, owner: str, text: str) -> Optional[str]:
        """把一条用户消息路由到对应命令, 返回回复文本; 不是提醒相关消息时返回 None"""
        try:
            return self._dispatch(owner, text)
        except Exception as e:
            logger.error(f"处理用户 {owner} 的命令时出错: {text!r}", exc_info=e)
            return GENERIC_ERROR_TEXT

    def _dispatch(self, owner: str, text: str) -> Optional[str]:
        head = _COMMAND_HEAD_RE.match(text)
        if head is not None:
            name = head.group("name").lower()
            logger.debug(f"用户 {owner} 调用命令: {name}")
            if name == "newreminder":
                match = _NEW_RE.match(text)
                return self.commands.create(owner, match.group("text")) if match else NEW_REMINDER_USAGE
            if name.startswith("listreminder"):
                return self.commands.list_reminders(owner) if _LIST_RE.match(text) else "❌ Format: /listreminder"
            if name == "editreminder":
                match = _EDIT_RE.match(text)
                if match is None:
                    return EDIT_REMINDER_USAGE
                return self.commands.edit(owner, int(match.group("position")), match.group("text"))
            if name == "delreminder":
                match = _DELETE_RE.match(text)
                if match is None:
                    return DELETE_REMINDER_USAGE
                arg = match.group("arg").lower()
                if arg in ("all", "semua"):
                    return self.commands.delete_all(owner)
                return self.commands.delete(owner, int(arg))
            if _HELP_RE.match(text):
                return render_help()
            return None

        if _NATURAL_RE.match(text):
            logger.debug(f"用户 {owner} 发送了自然语言提醒")
            return self.commands.create(owner, text.strip().lstrip("/.!"))

        return None

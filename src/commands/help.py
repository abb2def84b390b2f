__all__ = ["HELP_TEXT", "TIME_FORMATS_TEXT", "render_help"]

TIME_FORMATS_TEXT = (
    "Supported formats:\n"
    "• 7 or 07\n"
    "• 7:30 or 7.30\n"
    "• jam 7 or pukul 07.30 (+ besok / lusa)\n"
    "• in 2 hours or 30 menit lagi\n"
    "• setiap 2 jam or every 30 minutes\n"
    "• setiap hari jam 06.00 or every day at 06:00\n"
    "• every monday at 09:00 or setiap senin jam 9"
)

HELP_TEXT = (
    "🤖 *REMINDER BOT*\n"
    "━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━\n"
    "\n"
    "📅 *REMINDERS*\n"
    '/newreminder "Task jam HH:MM" - Create reminder\n'
    "/listreminder - Show all reminders\n"
    '/editreminder <num> "Task jam HH:MM" - Edit reminder\n'
    "/delreminder <num> - Delete reminder\n"
    "/delreminder all - Delete all reminders\n"
    "\n"
    "You can also just write: ingetin jam 14.00 meeting\n"
    "\n"
    "━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━\n"
    "\n"
    f"🕐 *TIME*\n{TIME_FORMATS_TEXT}"
)


def render_help() -> str:
    return HELP_TEXT

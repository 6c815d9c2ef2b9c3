# timetable_bot/ui.py
import calendar
import datetime
import html

from telebot.types import InlineKeyboardButton, InlineKeyboardMarkup

WEEKDAY_HEADER = ["S", "M", "T", "W", "T", "F", "S"]
MENU_TEXT = "📋 <b>Daily Timetable</b>\nChoose an action:"
HELP_TEXT = (
    "Tap a task in <b>Today</b> to mark it done or undo it, ℹ opens its details.\n"
    "<b>Add task</b> asks for a title in a normal message.\n"
    "Counts are for the current month and year; the calendar marks days with ■."
)


# ---------- formatting ----------
def format_show_date(iso_date):
    # ISO YYYY-MM-DD -> "15 Jun" for display
    try:
        d = datetime.datetime.strptime(iso_date, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        return iso_date or ""
    return f"{d.day} {d.strftime('%b')}"


def progress_bar(percent, width=10):
    percent = max(0, min(100, int(percent)))
    filled = round(percent * width / 100)
    return "▓" * filled + "░" * (width - filled) + f" {percent}%"


def today_text(tasks, percent, today=None):
    today = today or datetime.date.today()
    header = f"✅ <b>{today.strftime('%A')}, {format_show_date(today.isoformat())} {today.year}</b>"
    if not tasks:
        return header + "\n\nNo tasks yet, add one from the menu."
    return f"{header}\nToday's progress: {progress_bar(percent)}\n\nTap a task:"


def details_text(task):
    lines = [
        f"<b>{html.escape(task['title'])}</b>",
        f"Done today: {'yes' if task.get('done_today') else 'no'}",
        f"This month: <b>{task.get('month_count', 0)}</b> · This year: <b>{task.get('year_count', 0)}</b>",
    ]
    month_dates = task.get("month_dates") or []
    lines.append("")
    if month_dates:
        lines.append("Dates this month: " + ", ".join(format_show_date(d) for d in month_dates))
    else:
        lines.append("No completions this month yet.")
    return "\n".join(lines)


def calendar_text(cells, year, month, title=None, today=None):
    """Render month grid cells (None = blank) as a monospace block."""
    today_iso = (today or datetime.date.today()).isoformat()
    rows = [" ".join(f"{d:>2}" for d in WEEKDAY_HEADER)]
    week = []
    for cell in cells:
        if cell is None:
            week.append("  ")
        elif cell["done"]:
            week.append(" ■")
        elif cell["date"] == today_iso:
            week.append(" ·")
        else:
            week.append(f"{cell['day']:>2}")
        if len(week) == 7:
            rows.append(" ".join(week))
            week = []
    if week:
        rows.append(" ".join(week))
    heading = f"📅 <b>{calendar.month_name[month]} {year}</b>"
    if title:
        heading += f" · {html.escape(title)}"
    return heading + "\n<pre>" + "\n".join(rows) + "</pre>"


# ---------- keyboards ----------
def main_menu():
    kb = InlineKeyboardMarkup()
    kb.row(InlineKeyboardButton("✅ Today", callback_data="today"),
           InlineKeyboardButton("➕ Add task", callback_data="add"))
    kb.row(InlineKeyboardButton("📅 Calendar", callback_data="calendar"),
           InlineKeyboardButton("❔ Help", callback_data="help"))
    return kb


def back_kb():
    return InlineKeyboardMarkup().add(InlineKeyboardButton("⬅ Back", callback_data="back"))


def tasks_list_kb(tasks):
    kb = InlineKeyboardMarkup()
    for t in tasks:
        mark = "✔" if t.get("done") else "▫"
        label = f"{mark} {t['title'][:40]} ({t.get('month_count', 0)}/{t.get('year_count', 0)})"
        kb.row(InlineKeyboardButton(label, callback_data=f"tick:{t['id']}"),
               InlineKeyboardButton("ℹ", callback_data=f"task:{t['id']}"))
    kb.add(InlineKeyboardButton("⬅ Back", callback_data="back"))
    return kb


def task_action_kb(task_id, done_today=False):
    kb = InlineKeyboardMarkup()
    toggle_label = "↩ Undo today" if done_today else "✔ Done today"
    kb.row(InlineKeyboardButton(toggle_label, callback_data=f"do:{task_id}"),
           InlineKeyboardButton("📅 Calendar", callback_data=f"cal:{task_id}"))
    kb.row(InlineKeyboardButton("❌ Delete", callback_data=f"del:{task_id}"),
           InlineKeyboardButton("⬅ Back", callback_data="today"))
    return kb

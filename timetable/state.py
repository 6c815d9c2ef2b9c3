# timetable/state.py
"""
Checklist state and the pure functions over it.

The state is the persisted JSON document itself:

    {"tasks": [{"id": "t1", "title": "Read"}],
     "history": {"t1": {"2024-06-15": true}},
     "lastActiveDate": "2024-06-15"}

Every function returns a new dict and leaves its input untouched. Dates are
ISO strings (YYYY-MM-DD) and are compared as strings, which matches
chronological order for that fixed-width format.
"""
import calendar
import datetime
import math
import time

from timetable.errors import CorruptDocument

DEFAULT_TASKS = [
    {"id": "t1", "title": "Morning Exercise"},
    {"id": "t2", "title": "Study / Lectures"},
    {"id": "t3", "title": "Project Work"},
    {"id": "t4", "title": "Revision"},
    {"id": "t5", "title": "Read / Leisure"},
]

# weeks start on Sunday, like the calendar header S M T W T F S
FIRST_WEEKDAY = calendar.SUNDAY


def today_iso(today=None):
    return (today or datetime.date.today()).isoformat()


def default_state(with_default_tasks=False, today=None):
    tasks = [dict(t) for t in DEFAULT_TASKS] if with_default_tasks else []
    return {"tasks": tasks, "history": {}, "lastActiveDate": today_iso(today)}


def parse_date_input(date_str):
    """
    Accepts YYYY-MM-DD or DD.MM.YYYY, returns YYYY-MM-DD (None if neither).
    """
    if not date_str:
        return None
    date_str = date_str.strip()
    for fmt in ("%Y-%m-%d", "%d.%m.%Y"):
        try:
            return datetime.datetime.strptime(date_str, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def normalize_state(raw):
    """Coerce a parsed document into the state shape or raise CorruptDocument."""
    if not isinstance(raw, dict):
        raise CorruptDocument(f"document must be an object, got {type(raw).__name__}")
    tasks = raw.get("tasks", [])
    history = raw.get("history", {})
    if not isinstance(tasks, list):
        raise CorruptDocument("'tasks' must be a list")
    if not isinstance(history, dict):
        raise CorruptDocument("'history' must be an object")

    clean_tasks = []
    seen = set()
    for t in tasks:
        if not isinstance(t, dict) or t.get("id") is None:
            continue
        tid = str(t["id"])
        if tid in seen:
            continue
        seen.add(tid)
        clean_tasks.append({"id": tid, "title": str(t.get("title", ""))})

    clean_history = {}
    for tid, days in history.items():
        if not isinstance(days, dict):
            continue
        done = {d: True for d, v in days.items() if v is True}
        if done:
            clean_history[str(tid)] = done

    last_active = raw.get("lastActiveDate")
    return {
        "tasks": clean_tasks,
        "history": clean_history,
        "lastActiveDate": last_active if isinstance(last_active, str) else None,
    }


def touch_last_active(state, today=None):
    current = today_iso(today)
    if state.get("lastActiveDate") == current:
        return state
    return {**state, "lastActiveDate": current}


def find_task(state, task_id):
    for t in state["tasks"]:
        if t["id"] == task_id:
            return t
    return None


def is_done(state, task_id, date):
    return bool(state["history"].get(task_id, {}).get(date))


def toggle_completion(state, task_id, date):
    history = dict(state["history"])
    days = dict(history.get(task_id, {}))
    if days.get(date):
        del days[date]
    else:
        days[date] = True
    if days:
        history[task_id] = days
    else:
        history.pop(task_id, None)
    return {**state, "history": history}


def new_task_id(now=None):
    millis = int((time.time() if now is None else now) * 1000)
    return f"t{millis}"


def add_task(state, title, now=None):
    title = (title or "").strip()
    if not title:
        return state
    task = {"id": new_task_id(now), "title": title}
    return {**state, "tasks": state["tasks"] + [task]}


def remove_task(state, task_id):
    tasks = [t for t in state["tasks"] if t["id"] != task_id]
    history = {k: v for k, v in state["history"].items() if k != task_id}
    return {**state, "tasks": tasks, "history": history}


def dates_in_range(state, task_id, start, end):
    days = state["history"].get(task_id, {})
    return sorted(d for d, done in days.items() if done and start <= d <= end)


def month_bounds(year, month):
    last = calendar.monthrange(year, month)[1]
    return datetime.date(year, month, 1).isoformat(), datetime.date(year, month, last).isoformat()


def dates_in_month(state, task_id, year, month):
    start, end = month_bounds(year, month)
    return dates_in_range(state, task_id, start, end)


def dates_in_year(state, task_id, year):
    return dates_in_range(state, task_id, f"{year:04d}-01-01", f"{year:04d}-12-31")


def count_in_current_month(state, task_id, today=None):
    today = today or datetime.date.today()
    return len(dates_in_month(state, task_id, today.year, today.month))


def count_in_current_year(state, task_id, today=None):
    today = today or datetime.date.today()
    return len(dates_in_year(state, task_id, today.year))


def month_grid(state, task_id, year, month):
    """
    Calendar cells for one month: None for the blank weekdays before the 1st,
    then {"day", "date", "done"} per day. Without a task_id a day counts as
    done when any task was completed on it.
    """
    if task_id is None:
        done = set()
        for t in state["tasks"]:
            done.update(dates_in_month(state, t["id"], year, month))
    else:
        done = set(dates_in_month(state, task_id, year, month))

    weekday, days = calendar.monthrange(year, month)
    cells = [None] * ((weekday - FIRST_WEEKDAY) % 7)
    for day in range(1, days + 1):
        iso = datetime.date(year, month, day).isoformat()
        cells.append({"day": day, "date": iso, "done": iso in done})
    return cells


def today_progress_percent(state, today=None):
    date = today_iso(today)
    total = len(state["tasks"]) or 1
    done = sum(1 for t in state["tasks"] if is_done(state, t["id"], date))
    # half rounds up
    return int(math.floor(done * 100 / total + 0.5))

# timetable_bot/client.py
"""Thin wrappers over the timetable HTTP API. Every helper returns None on failure."""
import logging
import os

import requests

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://127.0.0.1:5000"
TIMEOUT = 5


def _call(method, path, **kwargs):
    try:
        api_url = os.getenv("API_URL", DEFAULT_API_URL).rstrip("/")
        r = requests.request(method, f"{api_url}{path}", timeout=TIMEOUT, **kwargs)
        r.raise_for_status()
        return r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("API %s %s failed: %s", method, path, e)
        return None


def api_get_tasks(date=None):
    params = {"date": date} if date else None
    res = _call("GET", "/tasks", params=params)
    return None if res is None else res.get("tasks", [])


def api_add_task(title):
    res = _call("POST", "/tasks", json={"title": title})
    return None if res is None else res.get("task")


def api_toggle_task(task_id, date=None):
    payload = {"date": date} if date else {}
    return _call("POST", f"/tasks/{task_id}/toggle", json=payload)


def api_delete_task(task_id):
    res = _call("DELETE", f"/tasks/{task_id}")
    return res is not None and res.get("status") == "deleted"


def api_get_task(task_id):
    res = _call("GET", f"/tasks/{task_id}")
    return None if res is None else res.get("task")


def api_get_calendar(task_id=None, year=None, month=None):
    params = {k: v for k, v in (("task_id", task_id), ("year", year), ("month", month)) if v}
    return _call("GET", "/calendar", params=params)


def api_get_progress():
    res = _call("GET", "/progress")
    return None if res is None else res.get("percent")

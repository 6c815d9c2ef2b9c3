# timetable/service.py
import datetime
import logging
import threading

from timetable import state as st
from timetable.errors import TimetableError

logger = logging.getLogger(__name__)


class Timetable:
    """
    Owns the in-memory document. Each mutation replaces it with the new state
    and hands that state to the store; the store never mutates it back.
    """

    def __init__(self, store, data, persisting=True):
        self.store = store
        self.persisting = persisting
        self._state = data
        self._lock = threading.Lock()

    @classmethod
    def boot(cls, store):
        try:
            data = store.boot()
        except TimetableError as e:
            # never leave the UI blank: run unsynced on an empty document
            logger.warning("Could not load from %s, continuing unsynced: %s", type(store).__name__, e)
            return cls(store, st.default_state(), persisting=False)
        tt = cls(store, data)
        touched = st.touch_last_active(data)
        if touched is not data:
            tt._commit(touched)
        return tt

    @property
    def synced(self):
        """True while edits are reaching a remote store."""
        return self.persisting and getattr(self.store, "synced", False)

    # ---------- persistence ----------
    def _commit(self, new_state):
        self._state = new_state
        if self.persisting:
            self.store.request_save(new_state)

    def close(self):
        if self.persisting:
            self.store.flush()

    # ---------- mutations ----------
    def toggle(self, task_id, date=None):
        """Flip completion of a task on a date (today by default); returns the new done flag."""
        date = date or st.today_iso()
        with self._lock:
            if st.find_task(self._state, task_id) is None:
                return None
            self._commit(st.toggle_completion(self._state, task_id, date))
            return st.is_done(self._state, task_id, date)

    def add(self, title):
        with self._lock:
            new_state = st.add_task(self._state, title)
            if new_state is self._state:
                return None
            self._commit(new_state)
            return new_state["tasks"][-1]

    def remove(self, task_id):
        with self._lock:
            if st.find_task(self._state, task_id) is None:
                return False
            self._commit(st.remove_task(self._state, task_id))
            return True

    # ---------- queries ----------
    def snapshot(self):
        return self._state

    def tasks_for(self, date=None):
        data = self._state
        date = date or st.today_iso()
        today = datetime.date.today()
        return [
            {
                **t,
                "done": st.is_done(data, t["id"], date),
                "month_count": st.count_in_current_month(data, t["id"], today),
                "year_count": st.count_in_current_year(data, t["id"], today),
            }
            for t in data["tasks"]
        ]

    def task_details(self, task_id):
        data = self._state
        task = st.find_task(data, task_id)
        if task is None:
            return None
        today = datetime.date.today()
        month_dates = st.dates_in_month(data, task_id, today.year, today.month)
        year_dates = st.dates_in_year(data, task_id, today.year)
        return {
            **task,
            "done_today": st.is_done(data, task_id, today.isoformat()),
            "month_count": len(month_dates),
            "year_count": len(year_dates),
            "month_dates": month_dates,
            "year_dates": year_dates,
        }

    def dates(self, task_id, start, end):
        return st.dates_in_range(self._state, task_id, start, end)

    def calendar(self, task_id=None, year=None, month=None):
        today = datetime.date.today()
        return st.month_grid(self._state, task_id, year or today.year, month or today.month)

    def progress(self):
        return st.today_progress_percent(self._state)

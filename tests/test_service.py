import datetime

from conftest import FakeDrive, FakeResponse
from timetable.auth import DriveAuth
from timetable.drive import FILES_URL, DriveSync
from timetable.errors import BootstrapError
from timetable.service import Timetable
from timetable.storage import LocalStore


class MemoryStore:
    synced = False

    def __init__(self, data=None, error=None):
        self.data = data
        self.error = error
        self.saved = []
        self.flushed = 0

    def boot(self):
        if self.error:
            raise self.error
        return self.data

    def request_save(self, state):
        self.saved.append(state)

    def flush(self):
        self.flushed += 1


def doc(last_active=None):
    return {"tasks": [{"id": "t1", "title": "Read"}], "history": {},
            "lastActiveDate": last_active or datetime.date.today().isoformat()}


def test_boot_updates_stale_last_active_date():
    store = MemoryStore(doc("2024-01-01"))
    tt = Timetable.boot(store)
    assert tt.snapshot()["lastActiveDate"] == datetime.date.today().isoformat()
    assert len(store.saved) == 1


def test_boot_does_not_write_when_current():
    store = MemoryStore(doc())
    Timetable.boot(store)
    assert store.saved == []


def test_mutations_persist_full_state():
    store = MemoryStore(doc())
    tt = Timetable.boot(store)
    assert tt.toggle("t1", "2024-06-15") is True
    task = tt.add("Run")
    assert task["title"] == "Run"
    assert tt.add("   ") is None
    assert tt.remove("t1") is True
    assert tt.remove("t1") is False
    assert tt.toggle("t1") is None
    assert len(store.saved) == 3
    assert store.saved[-1]["tasks"] == [task]
    assert store.saved[-1]["history"] == {}
    # earlier snapshots are not touched by later edits
    assert store.saved[0]["history"] == {"t1": {"2024-06-15": True}}


def test_queries():
    store = MemoryStore(doc())
    tt = Timetable.boot(store)
    today = datetime.date.today()
    tt.toggle("t1")
    [row] = tt.tasks_for()
    assert row["done"] and row["month_count"] == 1 and row["year_count"] == 1
    details = tt.task_details("t1")
    assert details["done_today"]
    assert details["month_dates"] == [today.isoformat()]
    assert tt.task_details("zzz") is None
    assert tt.progress() == 100
    cells = [c for c in tt.calendar("t1") if c]
    assert [c["date"] for c in cells if c["done"]] == [today.isoformat()]
    assert tt.dates("t1", "2000-01-01", "2999-12-31") == [today.isoformat()]


def test_failed_remote_boot_runs_unsynced_without_writes(caplog):
    store = MemoryStore(error=BootstrapError("provider unreachable"))
    store.synced = True
    tt = Timetable.boot(store)
    assert tt.snapshot()["tasks"] == []
    assert not tt.synced
    tt.add("Read")
    tt.close()
    assert store.saved == []
    assert store.flushed == 0
    assert "continuing unsynced" in caplog.text


def test_local_store_round_trip(tmp_path):
    tt = Timetable.boot(LocalStore(str(tmp_path)))
    assert len(tt.snapshot()["tasks"]) == 5
    assert not tt.synced
    tt.remove("t5")
    again = Timetable.boot(LocalStore(str(tmp_path)))
    assert [t["id"] for t in again.snapshot()["tasks"]] == ["t1", "t2", "t3", "t4"]


def test_drive_boot_and_debounced_edits(tmp_path, scheduler):
    drive = FakeDrive()
    auth = DriveAuth("client-id", refresh_token="r", session=drive)
    tt = Timetable.boot(DriveSync(auth, session=drive, timer_factory=scheduler))
    assert tt.synced
    assert drive.uploads == [tt.snapshot()]
    tt.add("Read")
    task_id = tt.snapshot()["tasks"][0]["id"]
    tt.toggle(task_id)
    tt.toggle(task_id)
    tt.toggle(task_id)
    scheduler.advance(1.0)
    assert len(drive.uploads) == 2
    assert drive.uploads[-1] == tt.snapshot()


def test_garbled_drive_reply_at_boot_runs_unsynced(scheduler, caplog):
    drive = FakeDrive()
    real_request = drive.request

    def proxy_page(method, url, **kwargs):
        if method == "GET" and url == FILES_URL:
            return FakeResponse(200, content=b"<html>proxy</html>")
        return real_request(method, url, **kwargs)

    drive.request = proxy_page
    auth = DriveAuth("client-id", refresh_token="r", session=drive)
    tt = Timetable.boot(DriveSync(auth, session=drive, timer_factory=scheduler))
    assert not tt.synced
    assert tt.snapshot()["tasks"] == []
    assert "continuing unsynced" in caplog.text

import json

import pytest

from timetable.auth import TOKEN_URL, DriveAuth
from timetable.drive import FILES_URL, UPLOAD_URL


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=None):
        self.status_code = status_code
        if content is None:
            content = b"" if payload is None else json.dumps(payload).encode("utf-8")
        self.content = content
        self.text = content.decode("utf-8", "replace")

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.content)


def uploaded_document(body, content_type):
    """Pull the file content part out of a multipart/related upload body."""
    boundary = content_type.split("boundary=", 1)[1]
    parts = body.decode("utf-8").split("--" + boundary)
    return json.loads(parts[2].split("\r\n\r\n", 1)[1].strip())


class FakeDrive:
    """Just enough of the Drive v3 files API and the OAuth token endpoint."""

    def __init__(self, files=None, token_status=200):
        self.files = dict(files or {})
        self.names = {fid: "timetable_data_v2.json" for fid in self.files}
        self.calls = []
        self.uploads = []
        self.token_status = token_status
        self.fail_uploads = False
        self._next_id = 1

    def count(self, method, url=None):
        return sum(1 for m, u, _ in self.calls if m == method and (url is None or u == url))

    # requests.Session surface
    def post(self, url, data=None, timeout=None, **kwargs):
        return self.request("POST", url, data=data, timeout=timeout, **kwargs)

    def request(self, method, url, params=None, headers=None, timeout=None, **kwargs):
        body = kwargs.get("json")
        data = kwargs.get("data")
        self.calls.append((method, url, {"params": params, "headers": headers, "json": body, "data": data}))
        if url == TOKEN_URL:
            if self.token_status != 200:
                return FakeResponse(self.token_status, {"error": "invalid_grant"})
            return FakeResponse(200, {"access_token": "tok-%d" % len(self.calls), "expires_in": 3600})
        if headers is None or not headers.get("Authorization", "").startswith("Bearer "):
            return FakeResponse(401, {"error": "unauthorized"})
        if method == "GET" and url == FILES_URL:
            found = [{"id": fid, "name": name} for fid, name in self.names.items()]
            return FakeResponse(200, {"files": found})
        if method == "POST" and url == FILES_URL:
            fid = "file-%d" % self._next_id
            self._next_id += 1
            self.files[fid] = b""
            self.names[fid] = body["name"]
            return FakeResponse(200, {"id": fid})
        if method == "GET" and url.startswith(FILES_URL + "/"):
            fid = url.rsplit("/", 1)[1]
            if fid not in self.files:
                return FakeResponse(404, {"error": "not found"})
            return FakeResponse(200, content=self.files[fid])
        if method == "PATCH" and url.startswith(UPLOAD_URL + "/"):
            if self.fail_uploads:
                return FakeResponse(503, {"error": "backend error"})
            fid = url.rsplit("/", 1)[1]
            doc = uploaded_document(data, headers["Content-Type"])
            self.uploads.append(doc)
            self.files[fid] = json.dumps(doc).encode("utf-8")
            return FakeResponse(200, {"id": fid})
        return FakeResponse(400, {"error": "unexpected %s %s" % (method, url)})


class FakeScheduler:
    """Stand-in for threading.Timer driven by a manual clock."""

    def __init__(self):
        self.now = 0.0
        self.timers = []

    def __call__(self, interval, function, args=()):
        timer = FakeTimer(self, self.now + interval, function, args)
        self.timers.append(timer)
        return timer

    def advance(self, seconds):
        self.now += seconds
        for timer in list(self.timers):
            if timer.started and not timer.cancelled and not timer.fired and timer.due <= self.now:
                timer.fire()


class FakeTimer:
    def __init__(self, scheduler, due, function, args):
        self.scheduler = scheduler
        self.due = due
        self.function = function
        self.args = args
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fired = True
        self.function(*self.args)


@pytest.fixture
def fake_drive():
    return FakeDrive()


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def consent_urls():
    return []


@pytest.fixture
def drive_auth(fake_drive, consent_urls, tmp_path):
    return DriveAuth(
        "client-id",
        client_secret="secret",
        refresh_token="refresh-1",
        token_path=str(tmp_path / "token.json"),
        consent_handler=consent_urls.append,
        session=fake_drive,
    )

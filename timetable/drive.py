# timetable/drive.py
"""
Google Drive backend: the whole document is one JSON file in appDataFolder.

The file is located by name on first use and its id is kept for the life of
the process. If it is deleted from Drive mid-session, writes keep going to
the stale id until restart. Every save replaces the full document with no
revision check, so two live sessions on one account overwrite each other.
"""
import enum
import json
import logging
import uuid
from dataclasses import dataclass
from typing import Optional

import requests

from timetable.debounce import WriteCoalescer
from timetable.errors import CorruptDocument, CredentialRequired, DriveError
from timetable.state import default_state, normalize_state

logger = logging.getLogger(__name__)

FILES_URL = "https://www.googleapis.com/drive/v3/files"
UPLOAD_URL = "https://www.googleapis.com/upload/drive/v3/files"
FILE_NAME = "timetable_data_v2.json"
MIME_TYPE = "application/json"
APP_DATA = "appDataFolder"


class ReadStatus(enum.Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    CORRUPT = "corrupt"


@dataclass
class ReadResult:
    status: ReadStatus
    state: Optional[dict] = None
    reason: str = ""


class _DriveClient:
    """Shared request plumbing: bearer header, API key, status checks."""

    def __init__(self, auth, session=None, timeout=None):
        self.auth = auth
        self._session = session
        self.timeout = timeout if timeout is not None else auth.timeout

    @property
    def session(self):
        return self._session or self.auth.session

    def _request(self, method, url, params=None, **kwargs):
        headers = dict(kwargs.pop("headers", {}))
        headers.update(self.auth.authorization_header())
        query = dict(self.auth.api_params())
        query.update(params or {})
        try:
            resp = self.session.request(method, url, params=query, headers=headers,
                                        timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise DriveError(f"{method} {url} failed: {e}") from e
        if resp.status_code == 401:
            # token revoked or expired early; the next call goes back through ensure_ready
            self.auth.invalidate()
            raise CredentialRequired()
        return resp

    @staticmethod
    def _check(resp, what):
        if not resp.ok:
            raise DriveError(f"{what} failed ({resp.status_code}): {resp.text[:200]}", resp.status_code)
        return resp

    @staticmethod
    def _field(resp, what, pick):
        """Pull a value out of a JSON reply; malformed bodies are Drive errors too."""
        try:
            return pick(resp.json())
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise DriveError(f"{what} returned an unexpected body: {resp.text[:200]!r}", resp.status_code) from e


class DriveFileProvisioner(_DriveClient):
    def __init__(self, auth, session=None, timeout=None):
        super().__init__(auth, session, timeout)
        self.file_id = None

    def ensure_file_exists(self):
        if self.file_id:
            return self.file_id
        resp = self._check(self._request("GET", FILES_URL, params={
            "q": f"name='{FILE_NAME}' and trashed=false",
            "spaces": APP_DATA,
            "fields": "files(id, name)",
        }), "file lookup")
        ids = self._field(resp, "file lookup", lambda body: [f["id"] for f in body.get("files") or []])
        if ids:
            if len(ids) > 1:
                logger.warning("%d files named %s, using %s", len(ids), FILE_NAME, ids[0])
            self.file_id = ids[0]
            return self.file_id

        resp = self._check(self._request("POST", FILES_URL, params={"fields": "id"}, json={
            "name": FILE_NAME,
            "parents": [APP_DATA],
            "mimeType": MIME_TYPE,
        }), "file create")
        self.file_id = self._field(resp, "file create", lambda body: body["id"])
        logger.info("created %s in %s (id=%s)", FILE_NAME, APP_DATA, self.file_id)
        return self.file_id


def multipart_related(metadata, content):
    """Body and content type for a Drive multipart upload."""
    boundary = "timetable-" + uuid.uuid4().hex
    parts = [
        f"--{boundary}\r\nContent-Type: application/json; charset=UTF-8\r\n\r\n",
        json.dumps(metadata),
        f"\r\n--{boundary}\r\nContent-Type: {MIME_TYPE}\r\n\r\n",
        content,
        f"\r\n--{boundary}--\r\n",
    ]
    return "".join(parts).encode("utf-8"), f"multipart/related; boundary={boundary}"


class DriveSync(_DriveClient):
    """load/save of the timetable document, with debounced saves."""

    synced = True

    def __init__(self, auth, provisioner=None, session=None, timeout=None,
                 save_delay=0.9, timer_factory=None):
        super().__init__(auth, session, timeout)
        self.provisioner = provisioner or DriveFileProvisioner(auth, session, timeout)
        self._coalescer = WriteCoalescer(self.save, delay=save_delay, timer_factory=timer_factory)

    def read(self):
        file_id = self.provisioner.ensure_file_exists()
        resp = self._request("GET", f"{FILES_URL}/{file_id}", params={"alt": "media"})
        if resp.status_code == 404:
            return ReadResult(ReadStatus.NOT_FOUND, reason="file vanished")
        self._check(resp, "file download")
        if not resp.content.strip():
            return ReadResult(ReadStatus.NOT_FOUND, reason="empty file")
        try:
            return ReadResult(ReadStatus.OK, normalize_state(json.loads(resp.content)))
        except (ValueError, CorruptDocument) as e:
            return ReadResult(ReadStatus.CORRUPT, reason=str(e))

    def load(self):
        self.auth.ensure_ready()
        result = self.read()
        if result.status is ReadStatus.OK:
            return result.state
        logger.warning("Creating fresh file (%s: %s)", result.status.value, result.reason)
        initial = default_state(with_default_tasks=False)
        self.save(initial)
        return initial

    boot = load

    def save(self, state):
        self.auth.ensure_ready()
        file_id = self.provisioner.ensure_file_exists()
        body, content_type = multipart_related({"name": FILE_NAME}, json.dumps(state))
        resp = self._request("PATCH", f"{UPLOAD_URL}/{file_id}",
                             params={"uploadType": "multipart"},
                             headers={"Content-Type": content_type}, data=body)
        self._check(resp, "upload")
        logger.debug("uploaded %d bytes to %s", len(body), file_id)

    def request_save(self, state):
        self._coalescer.request(state)

    def flush(self):
        self._coalescer.flush()

    @property
    def save_pending(self):
        return self._coalescer.pending

# timetable/auth.py
"""
OAuth bootstrap for the Drive backend.

A token is first requested silently with the stored refresh token. When there
is none, or Google rejects it, the user is sent through the consent screen:
the consent URL goes to ``consent_handler`` and Google redirects back to
``redirect_uri`` (the API's /auth/callback), which calls ``complete_consent``.
"""
import json
import logging
import os
import secrets
import threading
import time
from urllib.parse import parse_qs, urlencode, urlparse

import requests

from timetable.errors import BootstrapError, CredentialRequired

logger = logging.getLogger(__name__)

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
# app-data folder plus files this app created; nothing else in the user's Drive
SCOPES = "https://www.googleapis.com/auth/drive.appdata https://www.googleapis.com/auth/drive.file"
EXPIRY_MARGIN = 60


def log_consent_url(url):
    logger.warning("Google Drive access needed, open this URL to grant it: %s", url)


class DriveAuth:
    def __init__(self, client_id, client_secret=None, api_key=None, refresh_token=None,
                 token_path=None, redirect_uri="http://127.0.0.1:5000/auth/callback",
                 consent_handler=None, session=None, timeout=10.0, clock=time.time):
        self.client_id = client_id
        self.client_secret = client_secret
        self.api_key = api_key
        self.redirect_uri = redirect_uri
        self.token_path = token_path
        self.timeout = timeout
        self._refresh_token = refresh_token
        self._consent_handler = consent_handler or log_consent_url
        self._session = session
        self._clock = clock
        self._lock = threading.RLock()
        self._access_token = None
        self._expires_at = 0.0
        self._consent_state = None

    @property
    def session(self):
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @property
    def token(self):
        if self._access_token and self._clock() < self._expires_at - EXPIRY_MARGIN:
            return self._access_token
        return None

    def api_params(self):
        return {"key": self.api_key} if self.api_key else {}

    def ensure_ready(self):
        """Make sure a token is held, asking silently first and for consent second."""
        with self._lock:
            if self._session is None:
                self._session = requests.Session()
            if self.token:
                return
            if self._refresh():
                return
            if self._consent_state is None:
                self.request_consent()

    def authorization_header(self):
        token = self.token
        if not token:
            with self._lock:
                outstanding = self._consent_state is not None
            url = self.consent_url() if outstanding else self.request_consent()
            raise CredentialRequired(url)
        return {"Authorization": "Bearer " + token}

    def invalidate(self):
        with self._lock:
            self._access_token = None
            self._expires_at = 0.0

    # ---------- interactive consent ----------
    def consent_url(self):
        # one outstanding consent request at a time, so older URLs stay valid
        if self._consent_state is None:
            self._consent_state = secrets.token_urlsafe(16)
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": SCOPES,
            "access_type": "offline",
            "prompt": "consent",
            "state": self._consent_state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    def request_consent(self):
        with self._lock:
            url = self.consent_url()
        self._consent_handler(url)
        return url

    def complete_consent(self, code, state=None):
        """Exchange an authorization code (or the whole redirect URL) for tokens."""
        if code.startswith("http://") or code.startswith("https://"):
            query = parse_qs(urlparse(code).query)
            if "error" in query:
                raise BootstrapError(f"consent refused: {query['error'][0]}")
            state = state or query.get("state", [None])[0]
            code = query.get("code", [""])[0]
        if not code:
            raise BootstrapError("authorization code missing")
        with self._lock:
            if self._consent_state is None:
                raise BootstrapError("no consent request is outstanding")
            if not state or state != self._consent_state:
                raise BootstrapError("consent state does not match the last request")
            resp = self._post_token({
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
            })
            if not resp.ok:
                raise BootstrapError(f"code exchange rejected ({resp.status_code}): {resp.text[:200]}")
            self._store(resp)
            self._consent_state = None
        logger.info("Drive access granted")

    # ---------- silent issuance ----------
    def _refresh(self):
        refresh_token = self._refresh_token or self._load_cached_refresh_token()
        if not refresh_token:
            return False
        resp = self._post_token({"grant_type": "refresh_token", "refresh_token": refresh_token})
        if resp.status_code in (400, 401):
            logger.warning("silent token request rejected (%s), falling back to consent", resp.status_code)
            return False
        if not resp.ok:
            raise BootstrapError(f"token endpoint answered {resp.status_code}")
        self._store(resp)
        return True

    def _post_token(self, data):
        data = dict(data, client_id=self.client_id)
        if self.client_secret:
            data["client_secret"] = self.client_secret
        try:
            return self.session.post(TOKEN_URL, data=data, timeout=self.timeout)
        except requests.RequestException as e:
            raise BootstrapError(f"token endpoint unreachable: {e}") from e

    def _store(self, resp):
        try:
            payload = resp.json()
        except ValueError as e:
            raise BootstrapError("token endpoint returned invalid JSON") from e
        token = payload.get("access_token")
        if not token:
            raise BootstrapError("token endpoint returned no access_token")
        self._access_token = token
        self._expires_at = self._clock() + float(payload.get("expires_in", 3600))
        if payload.get("refresh_token"):
            self._refresh_token = payload["refresh_token"]
            self._save_cached_refresh_token(payload["refresh_token"])

    def _load_cached_refresh_token(self):
        if not self.token_path or not os.path.exists(self.token_path):
            return None
        try:
            with open(self.token_path, "r", encoding="utf-8") as f:
                return json.load(f).get("refresh_token")
        except (OSError, ValueError, AttributeError) as e:
            logger.error("cannot read token cache %s: %s", self.token_path, e)
            return None

    def _save_cached_refresh_token(self, refresh_token):
        if not self.token_path:
            return
        try:
            os.makedirs(os.path.dirname(self.token_path) or ".", exist_ok=True)
            with open(self.token_path, "w", encoding="utf-8") as f:
                json.dump({"refresh_token": refresh_token}, f)
        except OSError as e:
            logger.error("cannot write token cache %s: %s", self.token_path, e)

# timetable/storage.py
import json
import logging
import os

from timetable.errors import CorruptDocument
from timetable.state import default_state, normalize_state

logger = logging.getLogger(__name__)

STORAGE_KEY = "timetable_data_v2"


class LocalStore:
    """
    Local-only persistence: the whole document lives in one JSON file named
    after the storage key and is rewritten on every change.
    """

    synced = False

    def __init__(self, data_dir):
        self.path = os.path.join(data_dir, STORAGE_KEY + ".json")

    def load(self):
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return normalize_state(json.load(f))
        except (OSError, ValueError, CorruptDocument) as e:
            logger.error("load error %s: %s", self.path, e)
            return None

    def save(self, state):
        try:
            os.makedirs(os.path.dirname(self.path), exist_ok=True)
            tmp = self.path + ".tmp"
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=4, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error("save error %s: %s", self.path, e)

    # local writes are cheap, nothing to coalesce
    request_save = save

    def flush(self):
        pass

    def boot(self):
        stored = self.load()
        if stored is not None:
            return stored
        return default_state(with_default_tasks=True)

# storage.py - Local key-value persistence (one JSON file)

import json
import logging
import os

logger = logging.getLogger(__name__)


class KeyValueStore:
    """
    Flat key-value store backed by a single JSON file.

    Every set() rewrites the whole file, which is fine for the handful of
    small records the app keeps (calibration, settings, achievements,
    analytics history).
    """

    def __init__(self, path):
        self.path = path
        self._data = self._read()

    def _read(self):
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError):
            print(f"⚠️  Corrupted store file {self.path}. Starting fresh.")
            logger.warning("Could not decode %s, ignoring its contents", self.path)
            return {}

        if not isinstance(data, dict):
            logger.warning("Store %s does not hold an object, ignoring it", self.path)
            return {}
        return data

    def get(self, key, default=None):
        return self._data.get(key, default)

    def set(self, key, value):
        self._data[key] = value
        self._write()

    def remove(self, key):
        if self._data.pop(key, None) is not None:
            self._write()

    def __contains__(self, key):
        return key in self._data

    def _write(self):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        # Write then rename so a crash never leaves half a file behind
        tmp_path = self.path + ".tmp"
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(self._data, f, indent=2)
        os.replace(tmp_path, self.path)
        logger.debug("Saved %d keys to %s", len(self._data), self.path)

"""
BloodLink storage
Persistent collections of users, blood requests and donations.

Every mutation path goes through a store: the collections are read and
written as whole lists, and multi-collection updates are applied with
``commit`` so a reader never sees half of a change.
"""

import copy
import json
import logging
import os
import threading
from contextlib import contextmanager

from bloodlink.errors import ConflictError, PersistenceError
from bloodlink.models import BloodRequest, Donation, User

logger = logging.getLogger(__name__)

USERS = 'users'
REQUESTS = 'bloodRequests'
DONATIONS = 'donations'
CURRENT_USER = 'currentUser'
COLLECTIONS = (USERS, REQUESTS, DONATIONS)

RECORD_TYPES = {
    USERS: User,
    REQUESTS: BloodRequest,
    DONATIONS: Donation,
}


def normalize_record(name, record):
    """Stored record as the model reads it (coerced numbers, defaulted status)"""
    return RECORD_TYPES[name].from_dict(record).to_dict()


def expectation_holds(name, record, fields):
    """Compare expected field values against the normalized stored record"""
    if record is None:
        return False
    current = normalize_record(name, record)
    return all(current.get(k) == v for k, v in fields.items())


class BaseStore:
    """
    Abstract key-value store holding the three collections plus the
    single-value ``currentUser`` session entry.

    Subclasses implement the raw record access (``_read``, ``_write_many``,
    ``_read_current_user``, ``_write_current_user``).
    """

    def __init__(self):
        self._lock = threading.RLock()

    # ---------- raw access ----------

    def _read(self, name):
        raise NotImplementedError

    def _write_many(self, collections):
        """Write {name: records} as one unit"""
        raise NotImplementedError

    def _read_current_user(self):
        raise NotImplementedError

    def _write_current_user(self, record):
        raise NotImplementedError

    def _write(self, name, records):
        self._write_many({name: records})

    def _load(self, name):
        record_type = RECORD_TYPES[name]
        return [record_type.from_dict(record) for record in self._read(name)]

    def _save(self, name, items):
        self._write(name, [item.to_dict() for item in items])

    # ---------- collections ----------

    def load_users(self):
        return self._load(USERS)

    def save_users(self, users):
        self._save(USERS, users)

    def load_requests(self):
        return self._load(REQUESTS)

    def save_requests(self, requests):
        self._save(REQUESTS, requests)

    def load_donations(self):
        return self._load(DONATIONS)

    def save_donations(self, donations):
        self._save(DONATIONS, donations)

    # ---------- session ----------

    def load_current_user(self):
        record = self._read_current_user()
        return User.from_dict(record) if record else None

    def save_current_user(self, user):
        self._write_current_user(user.to_dict())

    def clear_current_user(self):
        self._write_current_user(None)

    # ---------- lookups ----------

    def get_user(self, user_id):
        return next((u for u in self.load_users() if u.id == user_id), None)

    def find_user_by_email(self, email):
        email = (email or '').strip().lower()
        return next((u for u in self.load_users() if u.email.lower() == email), None)

    def get_request(self, request_id):
        return next((r for r in self.load_requests() if r.id == request_id), None)

    # ---------- transactions ----------

    @contextmanager
    def transaction(self):
        """Exclusive section covering a read-check-write sequence"""
        with self._lock:
            yield self

    def commit(self, changes, expect=None):
        """
        Upsert records into several collections as one unit.

        Args:
            changes: {collection name: [records to insert or replace by id]}
            expect: {(collection name, id): {field: value}} that must still
                hold in the live store, else ConflictError and nothing is written
        """
        with self._lock:
            snapshots = {name: self._read(name) for name in changes}
            for (name, record_id), fields in (expect or {}).items():
                current = snapshots.get(name)
                if current is None:
                    current = self._read(name)
                record = next((r for r in current if r.get('id') == record_id), None)
                if not expectation_holds(name, record, fields):
                    raise ConflictError(f'{name} record {record_id} changed before commit')

            staged = {}
            for name, items in changes.items():
                records = list(snapshots[name])
                positions = {r.get('id'): i for i, r in enumerate(records)}
                for item in items:
                    data = item.to_dict()
                    if data['id'] in positions:
                        records[positions[data['id']]] = data
                    else:
                        positions[data['id']] = len(records)
                        records.append(data)
                staged[name] = records
            self._write_many(staged)


class MemoryStore(BaseStore):
    """Dict-backed store"""

    def __init__(self, data=None):
        super().__init__()
        self._data = {name: [] for name in COLLECTIONS}
        self._data[CURRENT_USER] = None
        for name, value in (data or {}).items():
            self._data[name] = copy.deepcopy(value)

    def _read(self, name):
        return copy.deepcopy(self._data.get(name) or [])

    def _write_many(self, collections):
        for name, records in collections.items():
            self._data[name] = copy.deepcopy(records)

    def _read_current_user(self):
        return copy.deepcopy(self._data.get(CURRENT_USER))

    def _write_current_user(self, record):
        self._data[CURRENT_USER] = copy.deepcopy(record)


# ============== DATA STORAGE (Persistent JSON Files) ==============

def load_json_file(file_path, default_value=None):
    """Load data from JSON file"""
    if not os.path.exists(file_path):
        return default_value
    try:
        with open(file_path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.exception('Error loading %s', file_path)
        raise PersistenceError(f'Could not read {os.path.basename(file_path)}') from e


def save_json_file(file_path, data):
    """Save data to JSON file (written to a temp file, then moved into place)"""
    stage_json_file(file_path, data)
    os.replace(file_path + '.tmp', file_path)


def stage_json_file(file_path, data):
    tmp_path = file_path + '.tmp'
    with open(tmp_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    return tmp_path


class JsonFileStore(BaseStore):
    """One JSON file per collection inside data_dir"""

    def __init__(self, data_dir):
        super().__init__()
        self.data_dir = data_dir
        os.makedirs(data_dir, exist_ok=True)

    def _path(self, name):
        return os.path.join(self.data_dir, f'{name}.json')

    def _read(self, name):
        data = load_json_file(self._path(name), [])
        if not isinstance(data, list):
            raise PersistenceError(f'{name}.json does not hold a list')
        return data

    def _write_many(self, collections):
        # stage every file before replacing any of them
        staged = []
        try:
            for name, records in collections.items():
                staged.append((stage_json_file(self._path(name), records), self._path(name)))
        except (OSError, TypeError, ValueError) as e:
            for tmp_path, _ in staged:
                _discard(tmp_path)
            _discard(self._path(name) + '.tmp')
            logger.exception('Error staging %s', ', '.join(collections))
            raise PersistenceError('Could not save data') from e

        try:
            for tmp_path, path in staged:
                os.replace(tmp_path, path)
        except OSError as e:
            logger.exception('Error saving %s', ', '.join(collections))
            raise PersistenceError('Could not save data') from e

    def _read_current_user(self):
        data = load_json_file(self._path(CURRENT_USER), None)
        return data if isinstance(data, dict) else None

    def _write_current_user(self, record):
        try:
            save_json_file(self._path(CURRENT_USER), record)
        except (OSError, TypeError, ValueError) as e:
            logger.exception('Error saving session')
            raise PersistenceError('Could not save session') from e


def _discard(path):
    if os.path.exists(path):
        os.remove(path)

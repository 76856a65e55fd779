"""
Subscription storage.

Writes take an optional `expected_state`: when given, the write applies
only if the stored record is still in that state and the call reports
whether it applied. Callbacks racing on one subscription rely on this.

"""

import abc
import logging
import sqlite3
import threading

from .model import Subscription

__all__ = ["SubscriptionStorage", "MemoryStorage", "SQLiteStorage"]

logger = logging.getLogger(__name__)


class SubscriptionStorage(abc.ABC):

    @abc.abstractmethod
    def has_subscription(self, id) -> bool:
        """Return whether a record exists for `id`."""

    @abc.abstractmethod
    def get_subscription(self, id):
        """Return the record for `id` or None."""

    @abc.abstractmethod
    def set_subscription(self, record, expected_state=None) -> bool:
        """Insert or replace `record`."""

    @abc.abstractmethod
    def delete_subscription(self, id, expected_state=None) -> bool:
        """Remove the record for `id`."""


class MemoryStorage(SubscriptionStorage):

    def __init__(self):
        self._records = {}
        self._lock = threading.Lock()

    def has_subscription(self, id):
        with self._lock:
            return id in self._records

    def get_subscription(self, id):
        with self._lock:
            data = self._records.get(id)
        return Subscription.from_dict(data) if data else None

    def set_subscription(self, record, expected_state=None):
        with self._lock:
            if not self._state_is(record.id, expected_state):
                return False
            self._records[record.id] = record.to_dict()
        return True

    def delete_subscription(self, id, expected_state=None):
        with self._lock:
            if id not in self._records:
                return False
            if not self._state_is(id, expected_state):
                return False
            del self._records[id]
        return True

    def _state_is(self, id, expected_state):
        if expected_state is None:
            return True
        current = self._records.get(id)
        return current is not None and \
            current["subscription_state"] == expected_state.value


class SQLiteStorage(SubscriptionStorage):
    """Subscriptions kept in a single SQLite table."""

    columns = ("id", "topic_url", "hub_url", "hub_protocol", "created_time",
               "lease_seconds", "verify_token", "secret", "expiration_time",
               "subscription_state")

    def __init__(self, path=":memory:"):
        self.path = str(path)
        self._lock = threading.Lock()
        self.db = sqlite3.connect(self.path, check_same_thread=False,
                                  isolation_level=None)
        self.db.row_factory = sqlite3.Row
        self.db.execute("""CREATE TABLE IF NOT EXISTS subscriptions (
                               id TEXT PRIMARY KEY, topic_url TEXT,
                               hub_url TEXT, hub_protocol TEXT,
                               created_time TEXT, lease_seconds INTEGER,
                               verify_token TEXT, secret TEXT,
                               expiration_time TEXT,
                               subscription_state TEXT)""")
        logger.debug("using subscription database %s", self.path)

    def has_subscription(self, id):
        with self._lock:
            row = self.db.execute("SELECT 1 FROM subscriptions WHERE id = ?",
                                  (id,)).fetchone()
        return row is not None

    def get_subscription(self, id):
        with self._lock:
            row = self.db.execute("SELECT * FROM subscriptions WHERE id = ?",
                                  (id,)).fetchone()
        if row is None:
            return None
        return Subscription.from_dict(dict(row))

    def set_subscription(self, record, expected_state=None):
        data = record.to_dict()
        values = [data[column] for column in self.columns]
        with self._lock:
            if expected_state is None:
                placeholders = ", ".join("?" * len(self.columns))
                self.db.execute(f"""INSERT OR REPLACE INTO subscriptions
                                    ({", ".join(self.columns)})
                                    VALUES ({placeholders})""", values)
                return True
            assignments = ", ".join(f"{column} = ?"
                                    for column in self.columns[1:])
            cursor = self.db.execute(f"""UPDATE subscriptions
                                         SET {assignments} WHERE id = ?
                                         AND subscription_state = ?""",
                                     values[1:] + [record.id,
                                                   expected_state.value])
        return cursor.rowcount == 1

    def delete_subscription(self, id, expected_state=None):
        query = "DELETE FROM subscriptions WHERE id = ?"
        values = [id]
        if expected_state is not None:
            query += " AND subscription_state = ?"
            values.append(expected_state.value)
        with self._lock:
            cursor = self.db.execute(query, values)
        return cursor.rowcount == 1

    def close(self):
        self.db.close()

"""SQLite database for alert rules and alert history."""
import sqlite3
import logging
import threading
from contextlib import contextmanager
from datetime import timezone
from pathlib import Path

from models.errors import PersistenceFailure

logger = logging.getLogger("cfalerts.db")

RULE_COLUMNS = (
    "id", "name", "metric", "condition", "value", "time_window_minutes",
    "enabled", "zone_id", "cooldown_minutes", "created_at", "updated_at",
)
ALERT_COLUMNS = (
    "id", "rule_id", "rule_name", "metric", "condition", "severity",
    "observed_value", "threshold", "message", "triggered_at", "acknowledged_at",
)


def _ts(value):
    """Normalize to a UTC ISO string so lexical order matches time order."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class Database:
    def __init__(self, db_path="data/alerts.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.Lock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS alert_rules (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                metric TEXT NOT NULL,
                condition TEXT NOT NULL,
                value REAL NOT NULL,
                time_window_minutes INTEGER NOT NULL,
                enabled INTEGER NOT NULL DEFAULT 1,
                zone_id TEXT,
                cooldown_minutes INTEGER,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS alert_history (
                id TEXT PRIMARY KEY,
                rule_id TEXT NOT NULL,
                rule_name TEXT NOT NULL,
                metric TEXT NOT NULL,
                condition TEXT NOT NULL,
                severity TEXT NOT NULL,
                observed_value REAL,
                threshold REAL,
                message TEXT,
                triggered_at TEXT NOT NULL,
                acknowledged_at TEXT
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_triggered
                ON alert_history(triggered_at);

            CREATE INDEX IF NOT EXISTS idx_alerts_rule
                ON alert_history(rule_id, triggered_at);
        """)
        self.conn.commit()

    @contextmanager
    def _transaction(self, action):
        """Serialize access and commit/rollback as one unit."""
        with self._lock:
            try:
                with self.conn:
                    yield self.conn
            except sqlite3.Error as e:
                logger.error(f"Database error during {action}: {e}")
                raise PersistenceFailure(f"{action} failed: {e}") from e

    def _read(self, action, sql, params=()):
        with self._transaction(action) as conn:
            return [dict(r) for r in conn.execute(sql, params).fetchall()]

    # --- Alert Rules ---

    def insert_rule(self, rule):
        d = rule.to_dict()
        d["enabled"] = int(rule.enabled)
        d["created_at"] = _ts(rule.created_at)
        d["updated_at"] = _ts(rule.updated_at)
        placeholders = ", ".join("?" for _ in RULE_COLUMNS)
        with self._transaction("insert rule") as conn:
            conn.execute(
                f"INSERT INTO alert_rules ({', '.join(RULE_COLUMNS)}) VALUES ({placeholders})",
                tuple(d[c] for c in RULE_COLUMNS),
            )

    def update_rule(self, rule):
        d = rule.to_dict()
        d["enabled"] = int(rule.enabled)
        d["updated_at"] = _ts(rule.updated_at)
        columns = [c for c in RULE_COLUMNS if c not in ("id", "created_at")]
        assignments = ", ".join(f"{c} = ?" for c in columns)
        with self._transaction("update rule") as conn:
            cur = conn.execute(
                f"UPDATE alert_rules SET {assignments} WHERE id = ?",
                tuple(d[c] for c in columns) + (rule.id,),
            )
            return cur.rowcount > 0

    def delete_rule(self, rule_id):
        with self._transaction("delete rule") as conn:
            cur = conn.execute("DELETE FROM alert_rules WHERE id = ?", (rule_id,))
            return cur.rowcount > 0

    def get_rule(self, rule_id):
        rows = self._read("get rule", "SELECT * FROM alert_rules WHERE id = ?", (rule_id,))
        return rows[0] if rows else None

    def list_rules(self, enabled_only=False):
        query = "SELECT * FROM alert_rules"
        if enabled_only:
            query += " WHERE enabled = 1"
        query += " ORDER BY created_at ASC, id ASC"
        return self._read("list rules", query)

    # --- Alert History ---

    def insert_alert(self, alert, max_rows=0):
        """Insert one alert row; drop the oldest rows beyond max_rows (0 = keep all)."""
        d = alert.to_dict()
        d["triggered_at"] = _ts(alert.triggered_at)
        d["acknowledged_at"] = _ts(alert.acknowledged_at)
        placeholders = ", ".join("?" for _ in ALERT_COLUMNS)
        with self._transaction("insert alert") as conn:
            conn.execute(
                f"INSERT INTO alert_history ({', '.join(ALERT_COLUMNS)}) VALUES ({placeholders})",
                tuple(d[c] for c in ALERT_COLUMNS),
            )
            if max_rows and max_rows > 0:
                conn.execute("""
                    DELETE FROM alert_history WHERE id NOT IN (
                        SELECT id FROM alert_history
                        ORDER BY triggered_at DESC, rowid DESC LIMIT ?
                    )
                """, (max_rows,))

    def get_alert(self, alert_id):
        rows = self._read("get alert", "SELECT * FROM alert_history WHERE id = ?", (alert_id,))
        return rows[0] if rows else None

    def get_recent_alerts(self, limit=None):
        query = "SELECT * FROM alert_history ORDER BY triggered_at DESC, rowid DESC"
        params = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        return self._read("list alerts", query, params)

    def get_latest_alert_for_rule(self, rule_id):
        rows = self._read("latest alert", """
            SELECT * FROM alert_history WHERE rule_id = ?
            ORDER BY triggered_at DESC, rowid DESC LIMIT 1
        """, (rule_id,))
        return rows[0] if rows else None

    def acknowledge_alert(self, alert_id, acknowledged_at):
        """Set acknowledged_at once. Returns False if already set or missing."""
        with self._transaction("acknowledge alert") as conn:
            cur = conn.execute(
                "UPDATE alert_history SET acknowledged_at = ? WHERE id = ? AND acknowledged_at IS NULL",
                (_ts(acknowledged_at), alert_id),
            )
            return cur.rowcount > 0

    def clear_alerts(self):
        with self._transaction("clear alerts") as conn:
            cur = conn.execute("DELETE FROM alert_history")
            return cur.rowcount

    def get_alert_stats(self):
        rows = self._read("alert stats", """
            SELECT severity, COUNT(*) as count,
                   SUM(CASE WHEN acknowledged_at IS NULL THEN 1 ELSE 0 END) as open
            FROM alert_history GROUP BY severity
        """)
        return {r["severity"]: {"count": r["count"], "open": r["open"]} for r in rows}

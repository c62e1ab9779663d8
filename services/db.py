import sqlite3
import threading
from pathlib import Path

import services.logger as log
import services.util as u
from services.error import IdentityError

l = log.get_logger()


class PeerDB:
    """Maps sender ids to the names they were last seen with."""

    def __init__(self, db_path: Path | None = None):
        self._local = threading.local()
        self._db_path = Path(db_path) if db_path is not None else Path(u.get_data_path()) / "peers.db"
        self._init_db()

    def _get_conn(self):
        if not hasattr(self._local, "conn"):
            self._local.conn = sqlite3.connect(self._db_path)
        return self._local.conn

    def _init_db(self):
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._get_conn()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS peers (
                peer_id TEXT PRIMARY KEY,
                username TEXT NOT NULL DEFAULT '',
                full_name TEXT NOT NULL DEFAULT ''
            )
        """)
        conn.commit()

    def save_peer(self, peer_id: str, username: str = "", full_name: str = ""):
        conn = self._get_conn()
        try:
            conn.execute("""
                INSERT OR REPLACE INTO peers (peer_id, username, full_name)
                VALUES (?, ?, ?)
            """, (peer_id, username or "", full_name or ""))
            conn.commit()
        except sqlite3.Error as e:
            l.error(f"Failed to save peer {peer_id}: {e}")

    def resolve(self, peer_id: str) -> str:
        """Display name for *peer_id*: username, else full name."""
        try:
            row = self._get_conn().execute(
                "SELECT username, full_name FROM peers WHERE peer_id = ?", (peer_id,)
            ).fetchone()
        except sqlite3.Error as e:
            raise IdentityError(f"find peer {peer_id}: {e}") from e
        if row is None:
            raise IdentityError(f"find peer {peer_id}: unknown peer")
        username, full_name = row
        name = username or full_name
        if not name:
            raise IdentityError(f"find peer {peer_id}: peer has no name")
        return name

    def close(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            del self._local.conn

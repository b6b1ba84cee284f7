import sqlite3
import threading
from dataclasses import dataclass
from typing import List, Optional

from .payload import SourceType

# registry.py: Creator profiles and the ledger of signed media
#
# - upsert_creator/lookup_creator: creator identity (wallet address or account id)
# - record_signature/signatures_for: one row per signing, keyed by the
#   pre-embedding content fingerprint
#
# SQLite, one short-lived connection per call, serialized by a lock.
# Idempotence ("don't sign twice") is enforced by callers, not here.


@dataclass
class Creator:
    id: str
    display_name: Optional[str]
    created_at: str


@dataclass
class SignatureEntry:
    id: int
    creator_id: str
    fingerprint: str
    source_type: SourceType
    prompt: Optional[str]
    signed_at: str


class Registry:
    def __init__(self, db_path: str = "reclaim.db"):
        self.db_path = db_path
        self._lock = threading.Lock()

    # --- SQLite helpers ---
    def _connect(self):
        with self._lock:
            conn = sqlite3.connect(self.db_path)
            conn.execute("""
            CREATE TABLE IF NOT EXISTS creators (
                id TEXT PRIMARY KEY,
                display_name TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """)
            conn.execute("""
            CREATE TABLE IF NOT EXISTS signatures (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                creator_id TEXT NOT NULL,
                fingerprint TEXT NOT NULL,
                source_type INTEGER NOT NULL DEFAULT 0,
                prompt TEXT,
                signed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_signatures_creator ON signatures (creator_id)")
            return conn

    def upsert_creator(self, creator_id: str, display_name: Optional[str] = None):
        if not creator_id:
            raise ValueError("creator_id cannot be empty")

        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    "INSERT INTO creators (id, display_name) VALUES (?, ?) "
                    "ON CONFLICT(id) DO UPDATE SET display_name = COALESCE(excluded.display_name, creators.display_name)",
                    (creator_id, display_name),
                )
        finally:
            conn.close()

    def lookup_creator(self, creator_id: str) -> Optional[Creator]:
        if not creator_id:
            return None

        conn = self._connect()
        try:
            cur = conn.execute(
                "SELECT id, display_name, created_at FROM creators WHERE id = ?", (creator_id,)
            )
            row = cur.fetchone()
            return Creator(*row) if row else None
        finally:
            conn.close()

    def display_name(self, creator_id: str) -> str:
        """Creator's display name, falling back to the raw id"""
        creator = self.lookup_creator(creator_id)
        return (creator.display_name if creator else None) or creator_id

    def record_signature(self, creator_id: str, fingerprint: str,
                         source_type: SourceType = SourceType.AUTHENTIC,
                         prompt: Optional[str] = None) -> int:
        if not creator_id or not fingerprint:
            raise ValueError("creator_id and fingerprint cannot be empty")

        conn = self._connect()
        try:
            with conn:
                cur = conn.execute(
                    "INSERT INTO signatures (creator_id, fingerprint, source_type, prompt) VALUES (?, ?, ?, ?)",
                    (creator_id, fingerprint.lower(), int(source_type), prompt),
                )
                return cur.lastrowid
        finally:
            conn.close()

    def signatures_for(self, creator_id: str) -> List[SignatureEntry]:
        """Signatures by a creator, newest first"""
        conn = self._connect()
        try:
            cur = conn.execute(
                "SELECT id, creator_id, fingerprint, source_type, prompt, signed_at "
                "FROM signatures WHERE creator_id = ? ORDER BY id DESC",
                (creator_id,),
            )
            return [
                SignatureEntry(row[0], row[1], row[2], SourceType(row[3]), row[4], row[5])
                for row in cur.fetchall()
            ]
        finally:
            conn.close()

    def fingerprints_for(self, creator_id: str) -> set:
        return {entry.fingerprint for entry in self.signatures_for(creator_id)}

    def delete_signature(self, signature_id: int) -> bool:
        conn = self._connect()
        try:
            with conn:
                cur = conn.execute("DELETE FROM signatures WHERE id = ?", (signature_id,))
                return cur.rowcount > 0
        finally:
            conn.close()

"""
uid-keyed ledgers (raw.tsv, stats.tsv) as a read-merge-write transaction.

A ledger holds at most one line per uid, kept in ascending uid order. A run
over ``[start_id, end_id]`` loads the prior ledger once, installs freshly
computed lines for the uids it processes, and rewrites the whole table after
every record. Lines for uids outside the range are carried over byte for
byte.

The on-disk file is replaced atomically on every commit, so it always holds a
complete table: head rows (uid < start_id), every record computed so far,
prior rows still awaiting recomputation, and the tail (end_id < uid <= max
manifest uid).

Each commit re-renders and rewrites the full table, so a run over n uids
writes O(n^2) bytes in total.

Only one process may target an output directory at a time. This is not
enforced.

Usage:
    ledger = Ledger.load(output_dir / "raw.tsv")
    ledger.begin(start_id, end_id, max_uid)
    for record in records:
        ledger.upsert(record.uid, record.to_line())
        ledger.commit()
    ledger.finish(processed_uids)
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from blobnn.errors import LedgerError
from blobnn.utils.json_utils import atomic_write_text
from blobnn.utils.logging import get_logger

logger = get_logger(__name__)

# Prior ledgers are carried over verbatim even if they hold undecodable bytes
_ENCODING = 'utf-8'
_ERRORS = 'surrogateescape'


def split_lines(text: str) -> List[str]:
    """Split on '\\n' only, keeping terminators (a final unterminated line is kept as is)."""
    parts = text.split("\n")
    lines = [p + "\n" for p in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def line_uid(line: str) -> int:
    """uid from the first tab-separated column of a ledger line."""
    head = line.split("\t", 1)[0].strip()
    try:
        return int(head)
    except ValueError:
        raise LedgerError(f"ledger line does not start with an integer uid: {line.rstrip()!r}")


class Ledger:
    """
    In-memory uid -> line table backed by one ledger file.

    Attributes:
        path: Ledger file path
        start_id: First uid of the current run's range (after begin())
        end_id: Last uid of the current run's range, None if unbounded
    """

    def __init__(self, path: Union[str, Path], rows: Optional[Dict[int, str]] = None):
        self.path = Path(path)
        self._rows: Dict[int, str] = dict(rows or {})
        self.start_id: Optional[int] = None
        self.end_id: Optional[int] = None

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Ledger":
        """
        Read a prior ledger. A missing file gives an empty ledger.

        Blank lines are ignored. When a uid occurs more than once the last
        line wins.

        Raises:
            LedgerError: File unreadable, or a line without an integer uid
        """
        path = Path(path)
        rows: Dict[int, str] = {}
        if path.exists():
            try:
                with open(path, 'r', encoding=_ENCODING, errors=_ERRORS, newline='') as f:
                    text = f.read()
            except OSError as e:
                raise LedgerError(f"cannot read ledger {path}: {e}") from e

            duplicates = 0
            for lineno, line in enumerate(split_lines(text), start=1):
                if not line.strip():
                    continue
                try:
                    uid = line_uid(line)
                except LedgerError as e:
                    raise LedgerError(f"{path}:{lineno}: {e}") from e
                if uid in rows:
                    duplicates += 1
                rows[uid] = line
            if duplicates:
                logger.warning(f"{path.name}: {duplicates} duplicated uid line(s), keeping the last of each")
            logger.debug(f"Loaded {len(rows)} prior row(s) from {path}")
        return cls(path, rows)

    def in_range(self, uid: int) -> bool:
        """Whether ``uid`` falls in the range given to begin()."""
        if self.start_id is None:
            return False
        return uid >= self.start_id and (self.end_id is None or uid <= self.end_id)

    def begin(self, start_id: int, end_id: Optional[int], max_uid: int) -> None:
        """
        Start a run over ``[start_id, end_id]``.

        Prior rows above ``max_uid`` (the largest uid in the manifest) are
        dropped.
        """
        self.start_id = start_id
        self.end_id = end_id
        stale = [uid for uid in self._rows if uid > max_uid]
        for uid in stale:
            del self._rows[uid]
        if stale:
            logger.debug(f"{self.path.name}: dropped {len(stale)} row(s) above uid {max_uid}")

    def upsert(self, uid: int, line: str) -> None:
        """Install a freshly computed line for ``uid``."""
        if not line.endswith("\n"):
            line += "\n"
        self._rows[uid] = line

    def discard(self, uid: int) -> None:
        """Remove any line for ``uid`` (recomputed without producing a row)."""
        self._rows.pop(uid, None)

    def render(self) -> str:
        """Full table text, ascending uid, every line newline-terminated."""
        parts = []
        for uid in sorted(self._rows):
            line = self._rows[uid]
            parts.append(line if line.endswith("\n") else line + "\n")
        return "".join(parts)

    def commit(self) -> None:
        """Atomically replace the ledger file with the current table."""
        atomic_write_text(self.render(), self.path, encoding=_ENCODING, errors=_ERRORS)

    def finish(self, processed_uids: Iterable[int]) -> None:
        """
        Close a run: drop prior rows inside the range whose uid was not
        recomputed, then commit.
        """
        processed = set(processed_uids)
        orphaned = [
            uid for uid in self._rows
            if self.in_range(uid) and uid not in processed
        ]
        for uid in orphaned:
            del self._rows[uid]
        if orphaned:
            logger.debug(f"{self.path.name}: dropped {len(orphaned)} in-range row(s) not in this run")
        self.commit()

    @property
    def uids(self) -> List[int]:
        return sorted(self._rows)

    def get(self, uid: int) -> Optional[str]:
        return self._rows.get(uid)

    def __contains__(self, uid: int) -> bool:
        return uid in self._rows

    def __len__(self) -> int:
        return len(self._rows)

    def __repr__(self) -> str:
        return f"Ledger(path={self.path}, rows={len(self._rows)})"

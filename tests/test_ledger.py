"""
Tests for blobnn/io/ledger.py.

Covers loading prior ledgers, the head/fresh/tail merge, pruning above the
manifest's largest uid, verbatim carry-over, and atomic commits.

Run with: pytest tests/test_ledger.py -v
"""

import pytest

from blobnn.errors import LedgerError
from blobnn.io.ledger import Ledger, line_uid, split_lines


def _prior(uid):
    return f"{uid}\tprior_{uid}.jpg\t1\told\n"


def _fresh(uid):
    return f"{uid}\tfresh_{uid}.jpg\t1\tnew\n"


@pytest.fixture
def ledger_path(tmp_path):
    return tmp_path / "raw.tsv"


def _write_prior(path, uids):
    path.write_text("".join(_prior(u) for u in uids))


def _run(path, start_id, end_id, max_uid, uids):
    ledger = Ledger.load(path)
    ledger.begin(start_id, end_id, max_uid)
    for uid in uids:
        ledger.upsert(uid, _fresh(uid))
        ledger.commit()
    ledger.finish(uids)
    return ledger


class TestLineHelpers:

    def test_split_lines_keeps_terminators(self):
        assert split_lines("a\nb\n") == ["a\n", "b\n"]

    def test_split_lines_unterminated_last_line(self):
        assert split_lines("a\nb") == ["a\n", "b"]

    def test_split_lines_empty(self):
        assert split_lines("") == []

    def test_line_uid(self):
        assert line_uid("12\tfoo\tbar\n") == 12

    def test_line_uid_not_integer(self):
        with pytest.raises(LedgerError):
            line_uid("uid\tfilename\n")


class TestLoad:
    """Reading prior ledgers."""

    def test_missing_file_is_empty(self, ledger_path):
        ledger = Ledger.load(ledger_path)
        assert len(ledger) == 0
        assert not ledger_path.exists()

    def test_blank_lines_ignored(self, ledger_path):
        ledger_path.write_text(_prior(1) + "\n" + _prior(2))
        assert Ledger.load(ledger_path).uids == [1, 2]

    def test_duplicate_uid_last_wins(self, ledger_path):
        ledger_path.write_text(_prior(1) + "1\tlater\n")
        assert Ledger.load(ledger_path).get(1) == "1\tlater\n"

    def test_non_integer_uid(self, ledger_path):
        ledger_path.write_text(_prior(1) + "oops\tx\n")
        with pytest.raises(LedgerError):
            Ledger.load(ledger_path)


class TestMerge:
    """Head, fresh rows, tail."""

    def test_fresh_ledger(self, ledger_path):
        _run(ledger_path, 1, None, 3, [1, 2, 3])
        assert ledger_path.read_text() == _fresh(1) + _fresh(2) + _fresh(3)

    def test_sub_range_preserves_head_and_tail(self, ledger_path):
        _write_prior(ledger_path, range(1, 11))

        _run(ledger_path, 4, 6, 10, [4, 5, 6])

        expected = (
            "".join(_prior(u) for u in (1, 2, 3))
            + "".join(_fresh(u) for u in (4, 5, 6))
            + "".join(_prior(u) for u in (7, 8, 9, 10))
        )
        assert ledger_path.read_text() == expected

    def test_one_row_per_uid_ascending(self, ledger_path):
        _write_prior(ledger_path, [5, 1, 3])
        _run(ledger_path, 2, 4, 6, [2, 4])
        uids = [line_uid(line) for line in ledger_path.read_text().splitlines()]
        assert uids == [1, 2, 4, 5]

    def test_rows_above_manifest_max_dropped(self, ledger_path):
        _write_prior(ledger_path, range(1, 13))
        _run(ledger_path, 4, 6, 10, [4, 5, 6])
        uids = [line_uid(line) for line in ledger_path.read_text().splitlines()]
        assert uids == list(range(1, 11))

    def test_in_range_rows_not_recomputed_are_dropped(self, ledger_path):
        """A stats row for a uid that no longer passes gating disappears."""
        _write_prior(ledger_path, range(1, 6))
        ledger = Ledger.load(ledger_path)
        ledger.begin(2, 4, 5)
        ledger.upsert(2, _fresh(2))
        ledger.discard(3)
        ledger.upsert(4, _fresh(4))
        ledger.finish([2, 4])
        assert ledger.uids == [1, 2, 4, 5]

    def test_intermediate_commit_keeps_pending_rows(self, ledger_path):
        """A crash mid-run leaves a complete table, prior rows included."""
        _write_prior(ledger_path, range(1, 6))
        ledger = Ledger.load(ledger_path)
        ledger.begin(2, 4, 5)
        ledger.upsert(2, _fresh(2))
        ledger.commit()
        assert ledger_path.read_text() == (
            _prior(1) + _fresh(2) + _prior(3) + _prior(4) + _prior(5)
        )

    def test_unterminated_last_line_gets_newline(self, ledger_path):
        ledger_path.write_text(_prior(1) + _prior(9).rstrip("\n"))
        _run(ledger_path, 2, 3, 9, [2])
        assert ledger_path.read_text() == _prior(1) + _fresh(2) + _prior(9)

    def test_carry_over_is_byte_exact(self, ledger_path):
        """Odd spacing, CRLF and undecodable bytes survive untouched."""
        odd = b"1\tname with  spaces\t\xff\xfe\r\n"
        ledger_path.write_bytes(odd + _prior(5).encode())
        _run(ledger_path, 2, 3, 5, [2])
        assert ledger_path.read_bytes() == odd + _fresh(2).encode() + _prior(5).encode()

    def test_idempotent(self, ledger_path):
        _write_prior(ledger_path, range(1, 8))
        _run(ledger_path, 2, 5, 7, [2, 3, 4, 5])
        first = ledger_path.read_bytes()
        _run(ledger_path, 2, 5, 7, [2, 3, 4, 5])
        assert ledger_path.read_bytes() == first

    def test_no_temp_files_left(self, ledger_path):
        _run(ledger_path, 1, None, 2, [1, 2])
        assert sorted(p.name for p in ledger_path.parent.iterdir()) == ["raw.tsv"]

    def test_upsert_terminates_line(self, ledger_path):
        ledger = Ledger(ledger_path)
        ledger.begin(1, None, 1)
        ledger.upsert(1, "1\tx")
        assert ledger.render() == "1\tx\n"

    def test_every_commit_writes_full_table(self, ledger_path, monkeypatch):
        """Each commit rewrites every row, so written bytes grow with the table."""
        from blobnn.io import ledger as ledger_module

        written = []
        real_write = ledger_module.atomic_write_text

        def recording_write(text, path, **kwargs):
            written.append(text.count("\n"))
            return real_write(text, path, **kwargs)

        monkeypatch.setattr(ledger_module, "atomic_write_text", recording_write)
        _run(ledger_path, 1, None, 4, [1, 2, 3, 4])
        assert written == [1, 2, 3, 4, 4]

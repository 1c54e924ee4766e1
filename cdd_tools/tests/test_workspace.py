import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from cdd_tools.shared.errors import SyncError, WriteFailure
from cdd_tools.workspace import SyncReport, append_block, read_source, write_source


class TestSyncReport:
    def test_empty(self):
        report = SyncReport()
        assert report.ok
        assert report.summary() == "0 written, 0 unchanged, 0 failed, 0 warnings"

    def test_fail(self, caplog):
        report = SyncReport()
        with caplog.at_level(logging.WARNING):
            report.fail(Path("a.rs"), SyncError("boom", "a.rs"))
        assert not report.ok
        assert report.failed == [(Path("a.rs"), "[a.rs] boom")]
        assert "Skipping a.rs: [a.rs] boom" in caplog.text

    def test_merge(self):
        first = SyncReport(written=[Path("a")], warnings=["w1"])
        second = SyncReport(unchanged=[Path("b")], failed=[(Path("c"), "x")], warnings=["w2"])
        merged = first.merge(second)
        assert merged is first
        assert merged.summary() == "1 written, 1 unchanged, 1 failed, 2 warnings"


class TestReadWrite:
    def test_read_missing(self, tmp_path):
        assert read_source(tmp_path / "missing.rs") == ""

    def test_read_undecodable(self, tmp_path):
        path = tmp_path / "binary.rs"
        path.write_bytes(b"\xff\xfe\x00")
        with pytest.raises(WriteFailure, match="Failed to read file"):
            read_source(path)

    def test_write_creates_parents(self, tmp_path):
        path = tmp_path / "a" / "b" / "c.rs"
        report = SyncReport()
        write_source(path, "", "fn a() {}\n", report)
        assert path.read_text() == "fn a() {}\n"
        assert report.written == [path]

    def test_unchanged_not_rewritten(self, tmp_path):
        path = tmp_path / "c.rs"
        path.write_text("x")
        report = SyncReport()
        with patch.object(Path, "write_text") as mock_write:
            write_source(path, "x", "x", report)
        mock_write.assert_not_called()
        assert report.unchanged == [path]

    def test_empty_new_file_written(self, tmp_path):
        path = tmp_path / "empty.rs"
        report = SyncReport()
        write_source(path, "", "", report)
        assert path.exists()
        assert report.written == [path]

    def test_write_error(self, tmp_path):
        report = SyncReport()
        with patch.object(Path, "write_text", side_effect=OSError("disk full")):
            with pytest.raises(WriteFailure) as exc_info:
                write_source(tmp_path / "c.rs", "", "x", report)
        assert "disk full" in str(exc_info.value)
        assert report.written == []


class TestAppendBlock:
    @pytest.mark.parametrize(
        "source,expected",
        [
            ("", "block\n"),
            ("a", "a\n\nblock\n"),
            ("a\n", "a\n\nblock\n"),
            ("a\n\n", "a\n\nblock\n"),
        ],
    )
    def test_append_block(self, source, expected):
        assert append_block(source, "block\n") == expected

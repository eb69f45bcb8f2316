#!/usr/bin/env python3
"""
Test the main function and command line interface of fixeol.py.
"""

import logging
import subprocess
import sys
import unittest
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path to import FixEol modules
sys.path.insert(0, str(Path(__file__).parent.parent))
sys.path.insert(0, str(Path(__file__).parent))
import fixeol  # pylint: disable=wrong-import-position
from fake_provider import FakeProvider  # pylint: disable=wrong-import-position
from gitprovider import GitError  # pylint: disable=wrong-import-position

# Disable logging for tests
fixeol.logger.setLevel(logging.CRITICAL)


class TestMain(unittest.TestCase):
    def setUp(self) -> None:
        self.provider = (
            FakeProvider()
            .add("crlf.txt", b"one\r\ntwo\r\n", b"one\ntwo\n")
            .add("clean.txt", b"one\n", b"one\n")
        )
        patcher = patch("fixeol.GitProvider", return_value=self.provider)
        self.git_provider = patcher.start()
        self.addCleanup(patcher.stop)

    def test_dry_run_reports_unfixed(self) -> None:
        """Test that a dry run with fixable files returns the unfixed code."""
        result = fixeol.main(["crlf.txt", "clean.txt"])
        self.assertEqual(result, fixeol.EXIT_UNFIXED)
        self.assertEqual(self.provider.content("crlf.txt"), b"one\ntwo\n")

    def test_execute_fixes_files(self) -> None:
        """Test that --execute writes the fixed file and returns 0."""
        result = fixeol.main(["crlf.txt", "clean.txt", "--execute"])
        self.assertEqual(result, 0)
        self.assertEqual(self.provider.content("crlf.txt"), b"one\r\ntwo\r\n")
        self.assertEqual(self.provider.copies, {})

    def test_execute_with_backup(self) -> None:
        """Test that --backup keeps a copy of the file before the fix."""
        result = fixeol.main(["-e", "-b", "crlf.txt"])
        self.assertEqual(result, 0)
        self.assertEqual(self.provider.copies["crlf.txt.backup"], b"one\ntwo\n")

    def test_duplicate_paths_with_backup(self) -> None:
        """Test that a file given twice is backed up and fixed once."""
        result = fixeol.main(["-e", "-b", "crlf.txt", "./crlf.txt", "crlf.txt"])
        self.assertEqual(result, 0)
        self.assertEqual(self.provider.writes, ["crlf.txt"])
        self.assertEqual(list(self.provider.copies), ["crlf.txt.backup"])

    def test_nothing_to_fix(self) -> None:
        """Test that a clean file returns 0 even in dry run."""
        self.assertEqual(fixeol.main(["clean.txt"]), 0)

    def test_pending_files_used_without_paths(self) -> None:
        """Test that modified files come from git when no path is given."""
        self.provider.pending = ["crlf.txt"]
        result = fixeol.main(["--execute"])
        self.assertEqual(result, 0)
        self.assertEqual(self.provider.content("crlf.txt"), b"one\r\ntwo\r\n")

    def test_no_pending_files(self) -> None:
        """Test that an unmodified work tree returns 0."""
        self.assertEqual(fixeol.main([]), 0)

    def test_directory_option(self) -> None:
        """Test that the repository is opened in the given directory."""
        with patch.object(self.provider, "initialize_repository") as initialize:
            fixeol.main(["-C", "/some/repo", "clean.txt"])
            initialize.assert_called_once_with("/some/repo")

    def test_fallback_option(self) -> None:
        """Test the ending used for lines missing at HEAD."""
        self.provider.add("new.txt", b"one\r\n", b"one\nnew\n")
        result = fixeol.main(["new.txt", "--execute", "--fallback", "crlf"])
        self.assertEqual(result, 0)
        self.assertEqual(self.provider.content("new.txt"), b"one\r\nnew\r\n")

    def test_file_error_returns_one(self) -> None:
        """Test that an I/O error on a file makes the run fail."""
        self.provider.tips["gone.txt"] = b"one\n"
        self.assertEqual(fixeol.main(["gone.txt", "crlf.txt", "-e"]), 1)
        self.assertEqual(self.provider.content("crlf.txt"), b"one\r\ntwo\r\n")

    def test_not_a_repository(self) -> None:
        """Test that a git failure on startup returns 1."""
        with patch.object(
            self.provider, "initialize_repository", side_effect=GitError("not a repo")
        ):
            self.assertEqual(fixeol.main(["crlf.txt"]), 1)

    def test_keyboard_interrupt(self) -> None:
        """Test main function handling KeyboardInterrupt."""
        with patch("fixeol.process_files", side_effect=KeyboardInterrupt()):
            self.assertEqual(fixeol.main(["crlf.txt"]), 130)

    def test_unexpected_exception(self) -> None:
        """Test main function handling unexpected exceptions."""
        with patch("fixeol.process_files", side_effect=RuntimeError("Test error")):
            self.assertEqual(fixeol.main(["crlf.txt", "--verbose"]), 1)
        fixeol.logger.setLevel(logging.CRITICAL)

    def test_invalid_workers_count(self) -> None:
        """Test that a worker count of 0 falls back to auto-detection."""
        self.assertEqual(fixeol.main(["crlf.txt", "--workers", "0", "-e"]), 0)

    def test_version_argument(self) -> None:
        """Test --version argument."""
        with self.assertRaises(SystemExit) as context:
            fixeol.main(["--version"])
        self.assertEqual(context.exception.code, 0)

    def test_main_module_execution(self) -> None:
        """Test running fixeol.py as a script."""
        result = subprocess.run(
            [sys.executable, "fixeol.py", "--version"],
            capture_output=True,
            text=True,
            timeout=30,
            check=False,
            cwd=str(Path(__file__).parent.parent),
        )
        self.assertEqual(result.returncode, 0)
        self.assertIn("FixEol", result.stdout or result.stderr)


if __name__ == "__main__":
    unittest.main()

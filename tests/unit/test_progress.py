from __future__ import annotations

from unittest.mock import Mock, patch

from backoffice_import.services.progress import ProgressTracker, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch("sys.stdout.isatty", return_value=True):
        assert is_tty_enabled() is True
    with patch("sys.stdout.isatty", return_value=False):
        assert is_tty_enabled() is False


class TestProgressTracker:
    def test_tty_creates_tqdm(self):
        with patch("backoffice_import.services.progress.is_tty_enabled", return_value=True), \
             patch("backoffice_import.services.progress.tqdm") as mock_tqdm:
            tracker = ProgressTracker(5, description="Rows")
            assert tracker.enabled is True
            mock_tqdm.assert_called_once_with(
                total=5,
                desc="Rows",
                unit="row",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def test_non_tty_is_disabled(self):
        with patch("backoffice_import.services.progress.is_tty_enabled", return_value=False):
            tracker = ProgressTracker(5)
            assert tracker.enabled is False
            assert tracker.pbar is None
            tracker.advance(created=1)
            assert tracker.current_row == 1

    def test_explicitly_disabled_even_on_tty(self):
        with patch("backoffice_import.services.progress.is_tty_enabled", return_value=True), \
             patch("backoffice_import.services.progress.tqdm") as mock_tqdm:
            tracker = ProgressTracker(5, enabled=False)
            assert tracker.pbar is None
            mock_tqdm.assert_not_called()

    def test_advance_updates_bar_and_postfix(self):
        pbar = Mock()
        with patch("backoffice_import.services.progress.is_tty_enabled", return_value=True), \
             patch("backoffice_import.services.progress.tqdm", return_value=pbar):
            with ProgressTracker(3) as tracker:
                tracker.advance(created=1, failed=0)
            pbar.update.assert_called_once_with(1)
            pbar.set_postfix.assert_called_once_with(created=1, failed=0, refresh=False)
            pbar.close.assert_called_once()
            assert tracker.pbar is None

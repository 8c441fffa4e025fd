from __future__ import annotations

from unittest.mock import Mock, patch

from skuops.services.progress import ProgressTracker, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch('sys.stdout.isatty', return_value=True):
        assert is_tty_enabled() is True

    with patch('sys.stdout.isatty', return_value=False):
        assert is_tty_enabled() is False


class TestProgressTracker:
    """Stage progress with and without a terminal."""

    def test_init_with_tty_enabled(self):
        with patch('skuops.services.progress.is_tty_enabled', return_value=True), \
             patch('skuops.services.progress.tqdm') as mock_tqdm:

            tracker = ProgressTracker(4, description="Updating")

            assert tracker.total_stages == 4
            assert tracker.current_stage == 0
            assert tracker.enabled is True
            mock_tqdm.assert_called_once_with(
                total=4,
                desc="Updating",
                unit="stage",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def test_init_with_tty_disabled(self):
        with patch('skuops.services.progress.is_tty_enabled', return_value=False):
            tracker = ProgressTracker(4)

            assert tracker.enabled is False
            assert tracker.pbar is None
            assert tracker.description == "Updating products"

    def test_start_stage_sets_description(self):
        mock_pbar = Mock()

        with patch('skuops.services.progress.is_tty_enabled', return_value=True), \
             patch('skuops.services.progress.tqdm', return_value=mock_pbar):

            tracker = ProgressTracker(4, description="Updating")
            tracker.start_stage("inventory")

            assert tracker.current_stage == 1
            mock_pbar.set_description.assert_called_once_with("Updating (inventory)")

    def test_finish_stage_counts_failures(self):
        mock_pbar = Mock()

        with patch('skuops.services.progress.is_tty_enabled', return_value=True), \
             patch('skuops.services.progress.tqdm', return_value=mock_pbar):

            tracker = ProgressTracker(2, description="Updating")
            tracker.finish_stage(success=True)
            mock_pbar.set_postfix.assert_not_called()

            tracker.finish_stage(success=False)
            assert tracker.failed_stages == 1
            assert mock_pbar.update.call_count == 2
            mock_pbar.set_postfix.assert_called_once_with(failed=1)

    def test_calls_without_tty_are_noops(self):
        with patch('skuops.services.progress.is_tty_enabled', return_value=False):
            tracker = ProgressTracker(2)
            tracker.start_stage("regular")
            tracker.finish_stage(success=False)
            tracker.set_postfix(products=10)
            tracker.close()

            assert tracker.current_stage == 1
            assert tracker.failed_stages == 1

    def test_context_manager_closes_once(self):
        mock_pbar = Mock()

        with patch('skuops.services.progress.is_tty_enabled', return_value=True), \
             patch('skuops.services.progress.tqdm', return_value=mock_pbar):

            with ProgressTracker(3) as tracker:
                assert isinstance(tracker, ProgressTracker)
            tracker.close()

            mock_pbar.close.assert_called_once()
            assert tracker.pbar is None

from __future__ import annotations

from unittest.mock import patch

from emigrant_pipeline.models.processing_result import EpochLog
from emigrant_pipeline.services.progress import TrainingProgress, is_tty_enabled


def test_is_tty_enabled_returns_stdout_isatty():
    with patch('sys.stdout.isatty', return_value=True):
        assert is_tty_enabled() is True

    with patch('sys.stdout.isatty', return_value=False):
        assert is_tty_enabled() is False


class TestTrainingProgress:
    def test_init_with_tty_enabled(self):
        with patch('emigrant_pipeline.services.progress.is_tty_enabled', return_value=True), \
             patch('emigrant_pipeline.services.progress.tqdm') as mock_tqdm:
            progress = TrainingProgress(30, description="Training total")

            assert progress.enabled is True
            mock_tqdm.assert_called_once_with(
                total=30,
                desc="Training total",
                unit="epoch",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )

    def test_update_sets_postfix_and_advances(self):
        with patch('emigrant_pipeline.services.progress.is_tty_enabled', return_value=True), \
             patch('emigrant_pipeline.services.progress.tqdm') as mock_tqdm:
            pbar = mock_tqdm.return_value
            with TrainingProgress(2) as progress:
                progress.update(EpochLog(1, 0.5, 0.25))
                progress.update(EpochLog(2, 0.4, None))

            pbar.set_postfix.assert_any_call(loss="0.5000", val_loss="0.2500")
            pbar.set_postfix.assert_any_call(loss="0.4000")
            assert pbar.update.call_count == 2
            pbar.close.assert_called_once()
            assert progress.epochs_seen == 2
            assert progress.last == EpochLog(2, 0.4, None)

    def test_disabled_without_tty(self):
        with patch('emigrant_pipeline.services.progress.is_tty_enabled', return_value=False), \
             patch('emigrant_pipeline.services.progress.tqdm') as mock_tqdm:
            with TrainingProgress(3) as progress:
                progress.update(EpochLog(1, 0.5, 0.5))

            mock_tqdm.assert_not_called()
            assert progress.pbar is None
            assert progress.epochs_seen == 1

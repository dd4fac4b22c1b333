from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

from ..models.processing_result import EpochLog

"""Progress display for model training with tqdm (TTY only).

One bar per training run, advanced once per epoch with the latest
loss / val_loss as postfix. In non-TTY environments (CI, piped output) the
bar is disabled so logs stay free of control sequences.
"""

__all__ = [
    "TrainingProgress",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    """True when stdout is a TTY and progress bars should be displayed."""
    return sys.stdout.isatty()


class TrainingProgress:
    """Epoch progress bar for one training run."""

    def __init__(self, total_epochs: int, *, description: str = "Training") -> None:
        self.total_epochs = total_epochs
        self.description = description
        self.epochs_seen = 0
        self.last: EpochLog | None = None

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_epochs,
                desc=description,
                unit="epoch",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def update(self, log: EpochLog) -> None:
        """Advance by one epoch and show its losses."""
        self.epochs_seen += 1
        self.last = log
        if self.enabled and self.pbar is not None:
            postfix = {"loss": f"{log.loss:.4f}"}
            if log.val_loss is not None:
                postfix["val_loss"] = f"{log.val_loss:.4f}"
            self.pbar.set_postfix(**postfix)
            self.pbar.update(1)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> TrainingProgress:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display with tqdm (TTY only).

One bar per run, one step per consolidation stage. In non-TTY
environments (CI, redirected output) nothing is drawn.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
]


def is_tty_enabled() -> bool:
    return sys.stdout.isatty()


class ProgressTracker:
    """Stage progress bar.

    Usable as a context manager; ``close`` is idempotent.
    """

    def __init__(self, total_stages: int, *, description: str = "Updating products") -> None:
        self.total_stages = total_stages
        self.description = description
        self.current_stage = 0
        self.failed_stages = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total_stages,
                desc=description,
                unit="stage",
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start_stage(self, stage: str) -> None:
        self.current_stage += 1
        if self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({stage})")

    def finish_stage(self, success: bool = True) -> None:
        if not success:
            self.failed_stages += 1
        if self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)
            if self.failed_stages:
                self.pbar.set_postfix(failed=self.failed_stages)

    def set_postfix(self, **kwargs: Any) -> None:
        if self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

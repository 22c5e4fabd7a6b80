"""Sampler distribution callback.

Logs class sample counts from TrackingClassSampler.
"""

from __future__ import annotations

import lightning as L
import torch
from loguru import logger
from rich import box
from rich.console import Console
from rich.table import Table

from imageclass_views.data.sampler import TrackingClassSampler


class SamplerDistributionCallback(L.Callback):
    """Log per-class sample counts from TrackingClassSampler each epoch.

    At the start of each training epoch (from epoch 1 onward), reads
    ``_last_indices`` from the sampler and maps them to class ids through
    the sampler's ImageClassSet. Prints a rich table comparing sampled
    counts against the uniform-over-classes expectation, which a balanced
    sampler should match whatever the class sizes.

    Skips if the sampler is not a ``TrackingClassSampler``.
    """

    def __init__(self) -> None:
        self.last_counts: dict[str, int] = {}

    def on_train_epoch_start(
        self, trainer: L.Trainer, pl_module: L.LightningModule
    ) -> None:
        """Read sampled indices and print class distribution table."""
        train_dl = trainer.train_dataloader
        if train_dl is None:
            return

        sampler = getattr(train_dl, "sampler", None)
        if not isinstance(sampler, TrackingClassSampler):
            logger.info(
                "Sampler is not TrackingClassSampler. Skipping distribution logging."
            )
            return

        if not sampler._last_indices:
            # first epoch: nothing drawn yet
            return

        image_set = sampler.image_set
        labels = image_set.image_class[torch.tensor(sampler._last_indices)]
        per_class = torch.bincount(labels, minlength=image_set.num_classes).tolist()
        counts = dict(zip(image_set.classes, per_class))

        total_sampled = len(sampler._last_indices)
        expected_per_class = total_sampled / image_set.num_classes

        console = Console()
        table = Table(
            title=f"Sampler Distribution (Epoch {trainer.current_epoch})",
            header_style="bold magenta",
            box=box.SQUARE,
            show_lines=True,
        )
        table.add_column("Class Name", style="cyan")
        table.add_column("Sampled Count", justify="right", style="green")
        table.add_column("Expected Count", justify="right")
        table.add_column("Ratio", justify="right", style="yellow")

        for name, count in counts.items():
            table.add_row(
                name,
                str(count),
                f"{expected_per_class:.0f}",
                f"{count / expected_per_class:.2f}x",
            )

        console.print(table)
        logger.info(
            f"Sampler distribution ({sampler.mode}): {total_sampled} samples "
            f"across {sum(1 for c in per_class if c)} classes"
        )
        self.last_counts = counts

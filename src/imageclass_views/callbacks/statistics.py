"""Dataset statistics callback: prints class distribution at training start."""

from __future__ import annotations

import lightning as L
from loguru import logger
from rich import box
from rich.console import Console
from rich.table import Table


class DatasetStatisticsCallback(L.Callback):
    """Print a rich table of the train ImageClassSet's class distribution.

    Reads ``trainer.datamodule.train_set``; counts come straight from the
    class index lists, so nothing is decoded. The counts of the last run
    are kept in ``last_counts``.
    """

    def __init__(self) -> None:
        self.last_counts: dict[str, int] = {}

    def on_fit_start(self, trainer: L.Trainer, pl_module: L.LightningModule) -> None:
        """Compute and display class distribution at training start."""
        datamodule = getattr(trainer, "datamodule", None)
        if datamodule is None:
            logger.warning("No datamodule found. Skipping dataset statistics.")
            return

        image_set = getattr(datamodule, "train_set", None)
        if image_set is None:
            logger.warning(
                "No train_set found on datamodule. Skipping dataset statistics."
            )
            return

        counts = {name: image_set.size(name) for name in image_set.classes}
        total = image_set.n_sample
        logger.info(f"Training dataset: {total} samples, {len(counts)} classes")

        console = Console()
        table = Table(
            title="Dataset Class Distribution",
            header_style="bold magenta",
            box=box.SQUARE,
            show_lines=True,
        )
        table.add_column("Class Name", style="cyan")
        table.add_column("Index", justify="right")
        table.add_column("Count", justify="right", style="green")
        table.add_column("Percentage", justify="right", style="yellow")

        for idx, (name, count) in enumerate(counts.items()):
            pct = count / total * 100 if total > 0 else 0.0
            table.add_row(name, str(idx), str(count), f"{pct:.1f}%")

        console.print(table)
        self.last_counts = counts

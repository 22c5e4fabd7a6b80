"""Index a dataset and report its classes, a sample batch and its views.

Usage:
    python -m imageclass_views.inspect_dataset data.data_root=/data/imagenet
    python -m imageclass_views.inspect_dataset data.data_root=... batch_size=64
    python -m imageclass_views.inspect_dataset data.data_root=... layouts=[bf]
"""

import sys
from typing import Any

import hydra
import lightning as L
import torch
from loguru import logger
from omegaconf import DictConfig, OmegaConf
from rich import box
from rich.console import Console
from rich.table import Table

# CRITICAL: import data to trigger @register decorators BEFORE Hydra parses config
import imageclass_views.data  # noqa: F401
from imageclass_views.data.batch import Batch
from imageclass_views.data.datamodule import ImageClassDataModule


def inspect(cfg: DictConfig) -> dict[str, Any]:
    """Build the train split, draw one batch and derive each requested layout.

    Returns a summary dict (class sizes, batch shape, shape per layout).
    """
    datamodule: ImageClassDataModule = hydra.utils.instantiate(cfg.data)
    image_set = datamodule.train_set

    class_sizes = {name: image_set.size(name) for name in image_set.classes}
    for name, count in class_sizes.items():
        logger.info(f"  {name}: {count}")

    batch_size = min(int(cfg.get("batch_size", 8)), len(image_set))
    images, labels, multi_hot = image_set.sample(batch_size)
    batch = Batch.from_tensors(
        images, labels, multi_hot, which_set="train", epoch_size=len(image_set)
    )
    logger.info(
        f"Sampled batch: images={tuple(images.shape)}, labels={labels.tolist()}"
    )

    table = Table(
        title="Batch Views",
        header_style="bold magenta",
        box=box.SQUARE,
    )
    table.add_column("Layout", style="cyan")
    table.add_column("Shape", justify="right", style="green")
    table.add_column("Pipeline")

    layouts: dict[str, tuple[int, ...]] = {}
    for layout in cfg.get("layouts", ["bchw"]):
        tensor = batch.inputs.forward_get(layout, torch.float32)
        layouts[layout] = tuple(tensor.shape)
        pipeline = batch.inputs.pipeline(layout)
        table.add_row(layout, str(layouts[layout]), repr(pipeline))
    Console().print(table)

    return {
        "num_classes": image_set.num_classes,
        "n_sample": len(image_set),
        "class_sizes": class_sizes,
        "batch_shape": tuple(images.shape),
        "layouts": layouts,
    }


@hydra.main(version_base=None, config_path="conf", config_name="inspect_dataset")
def main(cfg: DictConfig) -> None:
    """Run dataset inspection with the given Hydra config."""
    logger.remove()
    logger.add(sys.stderr, level=cfg.get("log_level", "INFO"))

    logger.info(f"Configuration:\n{OmegaConf.to_yaml(cfg)}")
    L.seed_everything(cfg.get("seed", 42), workers=True)

    summary = inspect(cfg)
    logger.info(
        f"{summary['n_sample']} samples over {summary['num_classes']} classes"
    )


if __name__ == "__main__":
    main()

"""LightningDataModule over ImageClassSet splits."""

from pathlib import Path
from typing import Any, Literal

import lightning as L
import torch
from loguru import logger
from torch.utils.data import DataLoader

from imageclass_views.config import DataModuleConfig, ImageClassSetConfig
from imageclass_views.data.dataset import ImageClassSet, ImageClassSetDataset
from imageclass_views.data.sampler import SamplerConfig, build_sampler
from imageclass_views.types import ClassificationBatch
from imageclass_views.utils.hydra import register

Split = Literal["train", "valid", "test"]


class BatchCollator:
    """Collate ``(image, label)`` pairs with ``ImageClassSet.batch_to_tensor``.

    A module-level callable rather than a bound method so DataLoader workers
    only pickle the dataset, not the whole DataModule.
    """

    def __init__(self, image_set: ImageClassSet) -> None:
        self.image_set = image_set

    def __call__(self, batch: list[tuple[torch.Tensor, int]]) -> ClassificationBatch:
        images, labels, multi_hot = self.image_set.batch_to_tensor(
            [item[0] for item in batch], [item[1] for item in batch]
        )
        return {"images": images, "labels": labels, "multi_hot": multi_hot}


@register(name="imageclass", config=DataModuleConfig)
class ImageClassDataModule(L.LightningDataModule):
    """DataModule for ``data_root/{train,valid,test}/<class>/<images>`` trees.

    Each split is indexed by its own ImageClassSet. Class ids come from the
    train split's folder order; valid/test must hold the same classes.

    Args:
        config: DataModuleConfig frozen model. If provided, flat kwargs are
            ignored.
        data_root: Path to dataset root (used when config is None, e.g. Hydra).
        batch_size: Batch size for DataLoaders (default: 32).
        num_workers: Number of DataLoader workers (default: 4).
        pin_memory: Whether to pin memory (default: True).
        persistent_workers: Keep workers alive between epochs (default: True).
        image_size: Square sample size images are resized to (default: 224).
        load_size: Square size images are loaded at before the final resize.
        sampling_mode: Sampling mode of the train ImageClassSet.
        sampler: SamplerConfig (or dict) for the train DataLoader.
        **kwargs: Absorbs extra Hydra-injected keys (_target_, _recursive_, etc.).
    """

    def __init__(
        self,
        config: DataModuleConfig | None = None,
        *,
        data_root: str = "",
        batch_size: int = 32,
        num_workers: int = 4,
        pin_memory: bool = True,
        persistent_workers: bool = True,
        image_size: int = 224,
        load_size: int | None = None,
        sampling_mode: Literal["balanced", "random"] = "balanced",
        sampler: SamplerConfig | dict[str, Any] | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__()
        if config is not None:
            self._config = config
        else:
            self._config = DataModuleConfig(
                data_root=data_root,
                batch_size=batch_size,
                num_workers=num_workers,
                pin_memory=pin_memory,
                persistent_workers=persistent_workers,
                image_size=image_size,
                load_size=load_size,
                sampling_mode=sampling_mode,
            )
        self._data_root = Path(self._config.data_root)
        if isinstance(sampler, dict):
            sampler = SamplerConfig(**sampler)
        self._sampler_config = sampler or SamplerConfig(
            mode=self._config.sampling_mode
        )

        # MPS guard: multiprocessing DataLoader workers crash on Apple Silicon.
        num_workers = self._config.num_workers
        if torch.backends.mps.is_available() and num_workers > 0:
            logger.warning(
                "MPS detected: setting num_workers=0 to avoid multiprocessing "
                "crash. Use linux-64 / CUDA for multi-worker DataLoading."
            )
            num_workers = 0

        self._num_workers = num_workers
        self._pin_memory = self._config.pin_memory
        self._persistent_workers = self._config.persistent_workers and num_workers > 0
        self._batch_size = self._config.batch_size

        self._train_set: ImageClassSet | None = None
        self._val_set: ImageClassSet | None = None
        self._test_set: ImageClassSet | None = None

    # ------------------------------------------------------------------
    # Class mapping, from the train split's folder order
    # ------------------------------------------------------------------

    @property
    def class_to_idx(self) -> dict[str, int]:
        """class_to_idx of the train split. Indexes train on first access."""
        return self.train_set.class_to_idx

    @property
    def num_classes(self) -> int:
        return self.train_set.num_classes

    @property
    def train_set(self) -> ImageClassSet:
        if self._train_set is None:
            self._train_set = self._build_set("train")
        return self._train_set

    def _build_set(self, split: Split) -> ImageClassSet:
        image_size = self._config.image_size
        load_size = self._config.load_size or image_size
        image_set = ImageClassSet(
            ImageClassSetConfig(
                data_path=(str(self._data_root / split),),
                load_size=(3, load_size, load_size),
                sample_size=(3, image_size, image_size),
                sampling_mode=self._config.sampling_mode,
                which_set=split,
                verbose=False,
            )
        )
        if split != "train" and image_set.classes != self.train_set.classes:
            raise ValueError(
                f"{split} classes {list(image_set.classes)} do not match "
                f"train classes {list(self.train_set.classes)}"
            )
        return image_set

    # ------------------------------------------------------------------
    # LightningDataModule lifecycle
    # ------------------------------------------------------------------

    def setup(self, stage: str | None = None) -> None:
        """Index the splits needed for ``stage``.

        Args:
            stage: "fit" (train + valid), "test" (test), or None (all).
        """
        if stage in ("fit", None):
            self._val_set = self._build_set("valid")
            logger.info(
                f"Setup fit: train={len(self.train_set)}, "
                f"val={len(self._val_set)} samples"
            )
        if stage in ("test", None):
            self._test_set = self._build_set("test")
            logger.info(f"Setup test: {len(self._test_set)} samples")

    def get_class_weights(self) -> torch.Tensor:
        """Inverse-frequency class weights, normalized to sum to num_classes."""
        counts = torch.tensor(
            [self.train_set.size(c) for c in range(self.num_classes)],
            dtype=torch.float32,
        )
        weights = 1.0 / counts.clamp(min=1.0)
        return weights / weights.sum() * self.num_classes

    # ------------------------------------------------------------------
    # DataLoaders
    # ------------------------------------------------------------------

    def _loader(
        self, image_set: ImageClassSet, train: bool
    ) -> DataLoader[tuple[torch.Tensor, int]]:
        sampler = build_sampler(self._sampler_config, image_set) if train else None
        return DataLoader(
            ImageClassSetDataset(image_set, train=train),
            batch_size=self._batch_size,
            sampler=sampler,
            shuffle=train and sampler is None,
            num_workers=self._num_workers,
            pin_memory=self._pin_memory,
            persistent_workers=self._persistent_workers,
            collate_fn=BatchCollator(image_set),
        )

    def train_dataloader(self) -> DataLoader[tuple[torch.Tensor, int]]:
        """Training DataLoader driven by the configured class sampler."""
        return self._loader(self.train_set, train=True)

    def val_dataloader(self) -> DataLoader[tuple[torch.Tensor, int]]:
        """Validation DataLoader (deterministic, index order)."""
        if self._val_set is None:
            raise RuntimeError("Call setup('fit') first")
        return self._loader(self._val_set, train=False)

    def test_dataloader(self) -> DataLoader[tuple[torch.Tensor, int]]:
        """Test DataLoader (deterministic, index order)."""
        if self._test_set is None:
            raise RuntimeError("Call setup('test') first")
        return self._loader(self._test_set, train=False)

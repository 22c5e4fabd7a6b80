"""Image-classification dataset over a flat ``root/<class>/<images>`` tree.

Scales to tens of millions of images: the index holds one fixed-width path
and one class id per image, and images are decoded only when a batch is
requested.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence

import torch
from loguru import logger
from torch.utils.data import Dataset

from imageclass_views.config import ImageClassSetConfig
from imageclass_views.data.batch import Batch
from imageclass_views.data.carry import Carry, CarryLike
from imageclass_views.data.codec import ImageCodec, PILImageCodec
from imageclass_views.data.index import SampleIndex, build_index
from imageclass_views.data.utils import FileEnumerator
from imageclass_views.errors import (
    IndexRangeError,
    ShapeMismatchError,
    UnsupportedModeError,
)
from imageclass_views.types import IndexList, IndexRange, IndexSelector, SingleIndex

# (inputs (B, C, H, W), labels (B,), multi_hot (B, K))
BatchTensors = tuple[torch.Tensor, torch.Tensor, torch.Tensor]


class ImageClassSet:
    """Indexed image-classification dataset with balanced sampling.

    Immediate subfolders of each ``data_path`` are classes. Every image
    under a class folder (recursively) is a sample of that class. The index
    is built once at construction and is read-only afterwards.

    Args:
        config: ImageClassSetConfig frozen model.
        codec: Decodes one path to a ``(C, H, W)`` tensor. Defaults to
            PILImageCodec loading at ``config.load_size``.
        enumerator: Streams the image files under a class folder.
        carry: Opaque per-sample payload sliced along with each batch.
        generator: RNG for sampling. Seeded from ``config.seed`` when not
            given and a seed is set.

    Raises:
        EmptyDatasetError: No image was found under any data path.
        EmptyClassError: A class folder holds no image.
    """

    def __init__(
        self,
        config: ImageClassSetConfig,
        codec: ImageCodec | None = None,
        enumerator: FileEnumerator | None = None,
        carry: CarryLike | None = None,
        generator: torch.Generator | None = None,
    ) -> None:
        self.config = config
        self._codec = codec or PILImageCodec(
            load_size=(config.load_size[1], config.load_size[2])
        )
        self._carry: CarryLike = carry if carry is not None else Carry()
        if generator is None and config.seed is not None:
            generator = torch.Generator().manual_seed(config.seed)
        self._generator = generator

        self._index: SampleIndex = build_index(
            config.data_path, enumerator=enumerator, verbose=config.verbose
        )
        logger.info(
            f"ImageClassSet[{config.which_set}]: {self.n_sample} samples, "
            f"{self.num_classes} classes, sampling={config.sampling_mode}"
        )

    # ------------------------------------------------------------------
    # Index accessors
    # ------------------------------------------------------------------

    @property
    def which_set(self) -> str:
        return self.config.which_set

    @property
    def sampling_mode(self) -> str:
        return self.config.sampling_mode

    @property
    def sample_size(self) -> tuple[int, int, int]:
        return self.config.sample_size or self.config.load_size

    @property
    def classes(self) -> tuple[str, ...]:
        return self._index.catalog.names

    @property
    def class_to_idx(self) -> dict[str, int]:
        return dict(self._index.catalog.name_to_id)

    @property
    def num_classes(self) -> int:
        return self._index.num_classes

    @property
    def n_sample(self) -> int:
        return self._index.n_sample

    @property
    def image_class(self) -> torch.Tensor:
        return self._index.image_class

    @property
    def class_lists(self) -> list[torch.Tensor]:
        return self._index.class_lists

    @property
    def carry(self) -> CarryLike:
        return self._carry

    def __len__(self) -> int:
        return self.n_sample

    def path(self, index: int) -> str:
        """File path of global sample ``index``."""
        self._check_indices([index])
        return self._index.paths[index]

    def size(self, cls: str | int | None = None) -> int:
        """Total number of samples, or the number in one class (name or id)."""
        if cls is None:
            return self.n_sample
        if isinstance(cls, str):
            cls = self._index.catalog.id_of(cls)
        return len(self._index.class_lists[cls])

    # ------------------------------------------------------------------
    # Decode hooks
    # ------------------------------------------------------------------

    def load_image(self, path: str) -> torch.Tensor:
        _, height, width = self.sample_size
        return self._codec.decode(path, height, width)

    def sample_hook_train(self, path: str) -> torch.Tensor:
        """Decode hook for sampled (training) draws. Override to augment."""
        return self.load_image(path)

    def sample_hook_test(self, path: str) -> torch.Tensor:
        """Decode hook for deterministic gathers."""
        return self.load_image(path)

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def draw_balanced(self, quantity: int) -> tuple[torch.Tensor, torch.Tensor]:
        """Pick ``quantity`` ``(index, class)`` pairs, classes drawn uniformly.

        Each draw picks a class uniformly among all classes, then a sample
        uniformly within that class, so small and large classes are drawn
        equally often.
        """
        self._check_quantity(quantity)
        if self.num_classes == 0:
            raise UnsupportedModeError("Cannot sample: dataset has no classes")
        classes = torch.randint(
            0, self.num_classes, (quantity,), generator=self._generator
        )
        indices = torch.empty(quantity, dtype=torch.long)
        for i, cls in enumerate(classes.tolist()):
            members = self._index.class_lists[cls]
            pick = torch.randint(0, len(members), (1,), generator=self._generator)
            indices[i] = members[int(pick)]
        return indices, classes

    def draw_random(self, quantity: int) -> tuple[torch.Tensor, torch.Tensor]:
        """Pick ``quantity`` ``(index, class)`` pairs uniformly over samples."""
        self._check_quantity(quantity)
        if self.n_sample == 0:
            raise UnsupportedModeError("Cannot sample: dataset has no samples")
        indices = torch.randint(
            0, self.n_sample, (quantity,), generator=self._generator
        )
        return indices, self._index.image_class[indices]

    def sample_balanced(self, quantity: int = 1) -> BatchTensors:
        """Decode a class-balanced random batch of ``quantity`` draws."""
        indices, classes = self.draw_balanced(quantity)
        return self._decode(indices.tolist(), classes.tolist(), self.sample_hook_train)

    def sample_random(self, quantity: int = 1) -> BatchTensors:
        """Decode a batch of ``quantity`` draws uniform over all samples."""
        indices, classes = self.draw_random(quantity)
        return self._decode(indices.tolist(), classes.tolist(), self.sample_hook_train)

    def sample(self, quantity: int = 1) -> BatchTensors:
        """Sample with the configured ``sampling_mode``."""
        if self.sampling_mode == "balanced":
            return self.sample_balanced(quantity)
        if self.sampling_mode == "random":
            return self.sample_random(quantity)
        raise UnsupportedModeError(f"Unknown sampling mode: {self.sampling_mode}")

    # ------------------------------------------------------------------
    # Deterministic gathers
    # ------------------------------------------------------------------

    def get(self, selector: IndexSelector) -> BatchTensors:
        """Decode the samples named by ``selector``, preserving order."""
        if isinstance(selector, SingleIndex):
            return self.get_by_indices([selector.index])
        if isinstance(selector, IndexRange):
            return self.get_range(selector.start, selector.stop)
        if isinstance(selector, IndexList):
            return self.get_by_indices(selector.indices)
        raise TypeError(f"Unsupported selector: {type(selector).__name__}")

    def get_range(self, start: int, stop: int) -> BatchTensors:
        """Decode samples ``start..stop`` inclusive, in ascending order."""
        if start > stop:
            raise IndexRangeError(f"start ({start}) > stop ({stop})")
        return self.get_by_indices(range(start, stop + 1))

    def get_by_indices(self, indices: Sequence[int] | torch.Tensor) -> BatchTensors:
        """Decode the samples at ``indices``, in the given order."""
        idx = [int(i) for i in indices]
        if not idx:
            raise IndexRangeError("empty index selection")
        self._check_indices(idx)
        labels = self._index.image_class[idx].tolist()
        return self._decode(idx, labels, self.sample_hook_test)

    def iterate(self, batch_size: int) -> Iterator[BatchTensors]:
        """Yield the dataset once in index order; the last batch may be short."""
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        for start in range(0, self.n_sample, batch_size):
            stop = min(start + batch_size, self.n_sample) - 1
            yield self.get_range(start, stop)

    # ------------------------------------------------------------------
    # Batch assembly
    # ------------------------------------------------------------------

    def batch_to_tensor(
        self, samples: Sequence[torch.Tensor], labels: Sequence[int]
    ) -> BatchTensors:
        """Stack decoded samples and build the label vector and multi-hot matrix.

        A 3-D sample ``(C, H, W)`` is one sample per draw. A 4-D sample
        ``(k, C, H, W)`` holds ``k`` samples of the same class (e.g. crops),
        and its label is repeated ``k`` times.
        """
        if len(samples) != len(labels):
            raise ValueError(
                f"{len(samples)} samples but {len(labels)} labels"
            )
        if not samples:
            raise ValueError("cannot assemble an empty batch")
        expected = samples[0].shape
        for i, sample in enumerate(samples):
            if sample.shape != expected:
                raise ShapeMismatchError(
                    f"sample {i} has shape {tuple(sample.shape)}, "
                    f"expected {tuple(expected)}"
                )
        if len(expected) == 3:
            per_draw = 1
            data = torch.stack(list(samples))
        elif len(expected) == 4:
            per_draw = expected[0]
            data = torch.cat(list(samples))
        else:
            raise ShapeMismatchError(
                f"samples must be 3-D or 4-D, got {len(expected)}-D"
            )

        scalar_labels = torch.tensor(list(labels), dtype=torch.long)
        if per_draw > 1:
            scalar_labels = scalar_labels.repeat_interleave(per_draw)
        multi_hot = torch.full(
            (len(scalar_labels), self.num_classes), -1, dtype=torch.long
        )
        multi_hot[torch.arange(len(scalar_labels)), scalar_labels] = 1
        return data, scalar_labels, multi_hot

    def batch(self, batch_size: int) -> Batch:
        """Factory: a Batch of the first ``batch_size`` samples."""
        return self.sub(0, min(batch_size, self.n_sample) - 1)

    def sub(self, start: int, stop: int, batch: Batch | None = None) -> Batch:
        """Decode samples ``start..stop`` inclusive into a Batch.

        When ``batch`` is given, its buffers are overwritten and it is
        returned, avoiding reallocation across iterations.
        """
        data, labels, multi_hot = self.get_range(start, stop)
        carry = self._carry.slice(start, stop)
        return self._to_batch(data, labels, multi_hot, carry, batch)

    def index(
        self, indices: Sequence[int] | torch.Tensor, batch: Batch | None = None
    ) -> Batch:
        """Decode samples at ``indices`` into a new or reused Batch."""
        data, labels, multi_hot = self.get_by_indices(indices)
        carry = self._carry.gather(indices)
        return self._to_batch(data, labels, multi_hot, carry, batch)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _to_batch(
        self,
        data: torch.Tensor,
        labels: torch.Tensor,
        multi_hot: torch.Tensor,
        carry: CarryLike | None,
        batch: Batch | None,
    ) -> Batch:
        if batch is None:
            return Batch.from_tensors(
                data,
                labels,
                multi_hot,
                carry,
                which_set=self.which_set,
                epoch_size=self.n_sample,
            )
        return batch.fill(data, labels, multi_hot, carry)

    def _decode(
        self,
        indices: Sequence[int],
        labels: Sequence[int],
        hook: Callable[[str], torch.Tensor],
    ) -> BatchTensors:
        samples = [hook(self._index.paths[i]) for i in indices]
        return self.batch_to_tensor(samples, labels)

    def _check_indices(self, indices: Sequence[int]) -> None:
        n = self.n_sample
        for i in indices:
            if i < 0 or i >= n:
                raise IndexRangeError(f"index {i} outside [0, {n})")

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity < 1:
            raise ValueError(f"quantity must be >= 1, got {quantity}")


class ImageClassSetDataset(Dataset[tuple[torch.Tensor, int]]):
    """Map-style torch Dataset over an ImageClassSet, for DataLoader workers.

    Only the read-only index is shared; every ``__getitem__`` decodes into
    fresh tensors, so multiple workers can read concurrently.

    Args:
        image_set: The indexed dataset.
        train: Decode with ``sample_hook_train`` instead of
            ``sample_hook_test``.
    """

    def __init__(self, image_set: ImageClassSet, train: bool = False) -> None:
        self.image_set = image_set
        self.train = train

    def __len__(self) -> int:
        return self.image_set.n_sample

    def __getitem__(self, idx: int) -> tuple[torch.Tensor, int]:
        path = self.image_set.path(idx)
        hook = (
            self.image_set.sample_hook_train
            if self.train
            else self.image_set.sample_hook_test
        )
        return hook(path), int(self.image_set.image_class[idx])

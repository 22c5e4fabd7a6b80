"""Unit tests for ImageClassSet."""

from pathlib import Path

import pytest
import torch

from imageclass_views.config import ImageClassSetConfig
from imageclass_views.data.batch import Batch
from imageclass_views.data.carry import Carry
from imageclass_views.data.dataset import ImageClassSet, ImageClassSetDataset
from imageclass_views.errors import (
    EmptyClassError,
    IndexRangeError,
    ShapeMismatchError,
)
from imageclass_views.types import IndexList, IndexRange, SingleIndex


class TestConstruction:
    def test_index_summary(self, image_set: ImageClassSet) -> None:
        assert image_set.classes == ("cat", "dog", "eel")
        assert image_set.class_to_idx == {"cat": 0, "dog": 1, "eel": 2}
        assert image_set.num_classes == 3
        assert len(image_set) == image_set.n_sample == 7

    def test_size_total_and_per_class(self, image_set: ImageClassSet) -> None:
        assert image_set.size() == 7
        assert image_set.size("cat") == 4
        assert image_set.size(1) == 2
        assert image_set.size("eel") == 1

    def test_sample_size_defaults_to_load_size(self, class_tree: Path) -> None:
        config = ImageClassSetConfig(
            data_path=str(class_tree), load_size=(3, 6, 5), verbose=False
        )
        image_set = ImageClassSet(config)
        images, _, _ = image_set.get_range(0, 1)
        assert images.shape == (2, 3, 6, 5)

    def test_empty_class_aborts_construction(
        self, class_tree: Path, class_config: ImageClassSetConfig
    ) -> None:
        (class_tree / "empty").mkdir()
        with pytest.raises(EmptyClassError):
            ImageClassSet(class_config)

    def test_path_lookup(self, image_set: ImageClassSet) -> None:
        assert Path(image_set.path(4)).name == "dog_0.png"
        with pytest.raises(IndexRangeError):
            image_set.path(7)


class TestDeterministicGather:
    def test_get_range_inclusive_ascending(self, image_set: ImageClassSet) -> None:
        images, labels, multi_hot = image_set.get_range(2, 5)
        assert images.shape == (4, 3, 8, 8)
        assert images.dtype == torch.float32
        assert labels.tolist() == [0, 0, 1, 1]
        assert multi_hot.shape == (4, 3)

    def test_get_range_single_sample(self, image_set: ImageClassSet) -> None:
        images, labels, _ = image_set.get_range(6, 6)
        assert images.shape == (1, 3, 8, 8)
        assert labels.tolist() == [2]

    def test_get_range_reversed_raises(self, image_set: ImageClassSet) -> None:
        with pytest.raises(IndexRangeError):
            image_set.get_range(5, 3)

    @pytest.mark.parametrize("start,stop", [(-1, 2), (5, 7)])
    def test_get_range_out_of_bounds_raises(
        self, image_set: ImageClassSet, start: int, stop: int
    ) -> None:
        with pytest.raises(IndexRangeError):
            image_set.get_range(start, stop)

    def test_get_by_indices_preserves_order(self, image_set: ImageClassSet) -> None:
        _, labels, _ = image_set.get_by_indices([6, 0, 4])
        assert labels.tolist() == [2, 0, 1]

    def test_get_by_indices_accepts_tensor(self, image_set: ImageClassSet) -> None:
        _, labels, _ = image_set.get_by_indices(torch.tensor([5, 6]))
        assert labels.tolist() == [1, 2]

    def test_get_by_indices_rejects_out_of_range(
        self, image_set: ImageClassSet
    ) -> None:
        with pytest.raises(IndexRangeError):
            image_set.get_by_indices([0, 7])

    def test_get_by_indices_rejects_empty(self, image_set: ImageClassSet) -> None:
        with pytest.raises(IndexRangeError, match="empty"):
            image_set.get_by_indices([])

    def test_get_dispatches_on_selector(self, image_set: ImageClassSet) -> None:
        assert image_set.get(SingleIndex(index=6))[1].tolist() == [2]
        assert image_set.get(IndexRange(start=3, stop=4))[1].tolist() == [0, 1]
        assert image_set.get(IndexList(indices=(5, 0)))[1].tolist() == [1, 0]

    def test_get_rejects_unknown_selector(self, image_set: ImageClassSet) -> None:
        with pytest.raises(TypeError):
            image_set.get((0, 1))  # type: ignore[arg-type]

    def test_decoded_pixels_match_source_color(self, image_set: ImageClassSet) -> None:
        """eel_0.JPG is solid blue; JPEG loss keeps it close."""
        images, _, _ = image_set.get_range(6, 6)
        mean = images[0].mean(dim=(1, 2))
        assert mean[2] > 0.7
        assert mean[0] < 0.1

    def test_iterate_covers_dataset_once(self, image_set: ImageClassSet) -> None:
        batches = list(image_set.iterate(3))
        assert [b[0].shape[0] for b in batches] == [3, 3, 1]
        labels = torch.cat([b[1] for b in batches])
        assert torch.equal(labels, image_set.image_class)

    def test_iterate_is_lazy(
        self, class_config: ImageClassSetConfig, zero_codec
    ) -> None:
        codec = zero_codec
        image_set = ImageClassSet(class_config, codec=codec)
        it = image_set.iterate(2)
        assert codec.paths == []
        next(it)
        assert len(codec.paths) == 2

    def test_iterate_rejects_zero_batch(self, image_set: ImageClassSet) -> None:
        with pytest.raises(ValueError):
            list(image_set.iterate(0))


class TestSampling:
    def test_sample_balanced_returns_quantity(self, image_set: ImageClassSet) -> None:
        images, labels, multi_hot = image_set.sample_balanced(5)
        assert images.shape == (5, 3, 8, 8)
        assert labels.shape == (5,)
        assert multi_hot.shape == (5, 3)

    def test_sample_labels_match_drawn_files(
        self, class_config: ImageClassSetConfig, zero_codec
    ) -> None:
        codec = zero_codec
        image_set = ImageClassSet(class_config, codec=codec)
        _, labels, _ = image_set.sample_balanced(20)
        for path, label in zip(codec.paths, labels.tolist()):
            assert f"/{image_set.classes[label]}/" in path.replace("\\", "/")

    def test_quantity_must_be_positive(self, image_set: ImageClassSet) -> None:
        with pytest.raises(ValueError, match="quantity"):
            image_set.sample_balanced(0)

    def test_balanced_ignores_class_size_skew(self, skewed_set: ImageClassSet) -> None:
        """1 vs 200 samples: both classes are drawn about half the time."""
        _, classes = skewed_set.draw_balanced(4000)
        tiny_share = (classes == skewed_set.class_to_idx["tiny"]).float().mean()
        assert 0.45 < float(tiny_share) < 0.55

    def test_random_follows_class_size(self, skewed_set: ImageClassSet) -> None:
        _, classes = skewed_set.draw_random(4000)
        tiny_share = (classes == skewed_set.class_to_idx["tiny"]).float().mean()
        assert float(tiny_share) < 0.02

    def test_drawn_indices_belong_to_drawn_class(
        self, skewed_set: ImageClassSet
    ) -> None:
        indices, classes = skewed_set.draw_balanced(100)
        assert torch.equal(skewed_set.image_class[indices], classes)

    def test_sample_dispatches_on_mode(self, skewed_set: ImageClassSet) -> None:
        assert skewed_set.sampling_mode == "balanced"
        _, labels, _ = skewed_set.sample(400)
        assert (labels == skewed_set.class_to_idx["tiny"]).any()

    def test_sample_random_mode(self, class_tree: Path, zero_codec) -> None:
        config = ImageClassSetConfig(
            data_path=str(class_tree),
            load_size=(3, 4, 4),
            sampling_mode="random",
            verbose=False,
            seed=3,
        )
        image_set = ImageClassSet(config, codec=zero_codec)
        images, labels, _ = image_set.sample(6)
        assert images.shape == (6, 3, 4, 4)
        assert labels.max() < 3

    def test_seed_makes_draws_reproducible(
        self, class_config: ImageClassSetConfig, zero_codec
    ) -> None:
        a = ImageClassSet(class_config, codec=zero_codec).draw_balanced(10)
        b = ImageClassSet(class_config, codec=zero_codec).draw_balanced(10)
        assert torch.equal(a[0], b[0])


class TestBatchToTensor:
    def test_multi_hot_uses_minus_one_background(
        self, image_set: ImageClassSet
    ) -> None:
        samples = [torch.zeros(3, 2, 2), torch.ones(3, 2, 2)]
        _, labels, multi_hot = image_set.batch_to_tensor(samples, [2, 0])
        assert labels.dtype == torch.long
        assert multi_hot.tolist() == [[-1, -1, 1], [1, -1, -1]]

    def test_four_dim_samples_repeat_labels(self, image_set: ImageClassSet) -> None:
        """A (k, C, H, W) sample contributes k rows with the same label."""
        samples = [torch.zeros(2, 3, 4, 4), torch.ones(2, 3, 4, 4)]
        images, labels, multi_hot = image_set.batch_to_tensor(samples, [1, 2])
        assert images.shape == (4, 3, 4, 4)
        assert labels.tolist() == [1, 1, 2, 2]
        assert multi_hot[:, 1].tolist() == [1, 1, -1, -1]

    def test_inconsistent_shapes_raise(self, image_set: ImageClassSet) -> None:
        samples = [torch.zeros(3, 4, 4), torch.zeros(3, 4, 5)]
        with pytest.raises(ShapeMismatchError, match="sample 1"):
            image_set.batch_to_tensor(samples, [0, 1])

    def test_unsupported_rank_raises(self, image_set: ImageClassSet) -> None:
        with pytest.raises(ShapeMismatchError):
            image_set.batch_to_tensor([torch.zeros(4, 4)], [0])

    def test_label_count_mismatch_raises(self, image_set: ImageClassSet) -> None:
        with pytest.raises(ValueError):
            image_set.batch_to_tensor([torch.zeros(3, 4, 4)], [0, 1])


class TestBatches:
    def test_batch_factory(self, image_set: ImageClassSet) -> None:
        batch = image_set.batch(4)
        assert isinstance(batch, Batch)
        assert len(batch) == 4
        assert batch.which_set == "train"
        assert batch.epoch_size == 7

    def test_batch_factory_clamps_to_dataset(self, image_set: ImageClassSet) -> None:
        assert len(image_set.batch(100)) == 7

    def test_sub_reuses_batch_buffers(self, image_set: ImageClassSet) -> None:
        batch = image_set.sub(0, 2)
        images_ptr = batch.images.data_ptr()
        labels_ptr = batch.labels.data_ptr()

        same = image_set.sub(3, 5, batch=batch)
        assert same is batch
        assert batch.images.data_ptr() == images_ptr
        assert batch.labels.data_ptr() == labels_ptr
        assert batch.labels.tolist() == [0, 1, 1]

    def test_sub_short_final_batch_reallocates(self, image_set: ImageClassSet) -> None:
        batch = image_set.sub(0, 2)
        image_set.sub(6, 6, batch=batch)
        assert batch.images.shape == (1, 3, 8, 8)
        assert batch.labels.tolist() == [2]

    def test_index_order_and_labels(self, image_set: ImageClassSet) -> None:
        batch = image_set.index([3, 1, 2])
        reference, _, _ = image_set.get_by_indices([3, 1, 2])
        assert torch.equal(batch.images, reference)
        assert batch.labels.tolist() == [0, 0, 0]

        image_set.index([6, 4, 0], batch=batch)
        assert batch.labels.tolist() == [2, 1, 0]
        assert batch.multi_hot is not None
        assert batch.multi_hot[0].tolist() == [-1, -1, 1]

    def test_carry_follows_samples(
        self, class_config: ImageClassSetConfig, zero_codec
    ) -> None:
        carry = Carry({"sample_id": torch.arange(7) * 10})
        image_set = ImageClassSet(class_config, codec=zero_codec, carry=carry)
        assert image_set.sub(2, 4).carry["sample_id"].tolist() == [20, 30, 40]
        assert image_set.index([6, 1]).carry["sample_id"].tolist() == [60, 10]


class TestImageClassSetDataset:
    def test_len_and_item(self, image_set: ImageClassSet) -> None:
        ds = ImageClassSetDataset(image_set)
        assert len(ds) == 7
        img, label = ds[4]
        assert img.shape == (3, 8, 8)
        assert label == 1

    def test_train_flag_uses_train_hook(self, image_set: ImageClassSet) -> None:
        calls: list[str] = []

        class Hooked(ImageClassSet):
            def sample_hook_train(self, path: str) -> torch.Tensor:
                calls.append(path)
                return super().sample_hook_train(path)

        hooked = Hooked(image_set.config)
        ImageClassSetDataset(hooked, train=True)[0]
        ImageClassSetDataset(hooked, train=False)[0]
        assert len(calls) == 1

"""Tests for Carry slicing and gathering."""

import torch

from imageclass_views.data.carry import Carry


def _carry() -> Carry:
    return Carry({"ids": torch.arange(5) * 10, "names": list("abcde")})


class TestCarry:
    def test_slice_is_inclusive(self) -> None:
        part = _carry().slice(1, 3)
        assert part["ids"].tolist() == [10, 20, 30]
        assert part["names"] == ["b", "c", "d"]

    def test_slice_shares_tensor_storage(self) -> None:
        carry = _carry()
        part = carry.slice(2, 4)
        assert part["ids"].data_ptr() == carry["ids"][2].data_ptr()

    def test_gather_follows_order(self) -> None:
        part = _carry().gather([4, 0, 2])
        assert part["ids"].tolist() == [40, 0, 20]
        assert part["names"] == ["e", "a", "c"]

    def test_gather_accepts_tensor(self) -> None:
        part = _carry().gather(torch.tensor([1]))
        assert part["names"] == ["b"]

    def test_mapping_protocol(self) -> None:
        carry = Carry()
        assert len(carry) == 0
        carry["w"] = [1, 2]
        assert "w" in carry
        assert list(carry) == ["w"]

    def test_empty_carry_slices_to_empty(self) -> None:
        assert len(Carry().slice(0, 3)) == 0

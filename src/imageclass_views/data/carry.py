"""Opaque per-sample payload carried alongside batch inputs and targets."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any, Protocol

import torch


class CarryLike(Protocol):
    """Anything that can be narrowed or gathered along its sample axis."""

    def slice(self, start: int, stop: int) -> CarryLike: ...

    def gather(self, indices: Sequence[int] | torch.Tensor) -> CarryLike: ...


class Carry:
    """Dict of per-sample entries, each a tensor (sample axis first) or list.

    The dataset never inspects the entries; it only slices and gathers them
    in step with the batch. ``stop`` is inclusive, like the dataset's
    range operations.
    """

    def __init__(self, data: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(data or {})

    def slice(self, start: int, stop: int) -> Carry:
        out: dict[str, Any] = {}
        for key, value in self._data.items():
            if isinstance(value, torch.Tensor):
                out[key] = value.narrow(0, start, stop - start + 1)
            else:
                out[key] = list(value[start : stop + 1])
        return Carry(out)

    def gather(self, indices: Sequence[int] | torch.Tensor) -> Carry:
        index = torch.as_tensor(indices, dtype=torch.long)
        out: dict[str, Any] = {}
        for key, value in self._data.items():
            if isinstance(value, torch.Tensor):
                out[key] = value.index_select(0, index)
            else:
                out[key] = [value[i] for i in index.tolist()]
        return Carry(out)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

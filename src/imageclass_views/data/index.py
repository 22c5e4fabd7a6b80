"""In-memory index over a ``root/<class>/**/<image>`` folder tree.

The build runs in two passes. The first streams every class's file paths
into a scratch file while counting them and tracking the longest encoded
path. The second allocates one fixed-width path table for the whole corpus
and fills it class by class, so only ``N * width`` bytes of paths plus one
class id per image stay resident, whatever the corpus size.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterator, Sequence
from types import MappingProxyType
from typing import BinaryIO

import numpy as np
import torch
from loguru import logger
from tqdm import tqdm

from imageclass_views.data.utils import (
    DirectoryEnumerator,
    FileEnumerator,
    find_class_folders,
)
from imageclass_views.errors import (
    EmptyClassError,
    EmptyDatasetError,
    ImageClassViewsError,
)

__all__ = ["ClassCatalog", "PathTable", "SampleIndex", "build_index"]


class ClassCatalog:
    """Ordered, immutable class names with a 0-based name <-> id mapping.

    Args:
        names: Class names in first-seen order.
        folders: ``folders[i]`` holds every directory contributing to class i.
    """

    def __init__(
        self, names: Sequence[str], folders: Sequence[Sequence[str]]
    ) -> None:
        if len(names) != len(folders):
            raise ValueError("names and folders must have the same length")
        self._names = tuple(names)
        self._folders = tuple(tuple(f) for f in folders)
        self._name_to_id = MappingProxyType(
            {name: i for i, name in enumerate(self._names)}
        )

    @property
    def names(self) -> tuple[str, ...]:
        return self._names

    @property
    def name_to_id(self) -> MappingProxyType[str, int]:
        return self._name_to_id

    def id_of(self, name: str) -> int:
        return self._name_to_id[name]

    def name_of(self, class_id: int) -> str:
        return self._names[class_id]

    def folders_of(self, class_id: int) -> tuple[str, ...]:
        return self._folders[class_id]

    def __len__(self) -> int:
        return len(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._name_to_id

    def __repr__(self) -> str:
        return f"ClassCatalog({len(self)} classes)"


class PathTable:
    """Compact fixed-width string table.

    Backed by a single numpy ``S{width}`` array: one contiguous buffer of
    ``length * width`` bytes. Paths are stored as filesystem-encoded bytes
    and NUL padded, so ``width`` must leave at least one terminator slot.
    """

    def __init__(self, length: int, width: int) -> None:
        if width < 1:
            raise ValueError(f"width must be >= 1, got {width}")
        self._data = np.zeros(length, dtype=f"S{width}")

    @property
    def width(self) -> int:
        return self._data.dtype.itemsize

    @property
    def nbytes(self) -> int:
        return self._data.nbytes

    def __len__(self) -> int:
        return len(self._data)

    def __getitem__(self, index: int) -> str:
        return os.fsdecode(self._data[index])

    def __setitem__(self, index: int, path: str | bytes) -> None:
        encoded = os.fsencode(path)
        if len(encoded) >= self.width:
            raise ValueError(
                f"path of {len(encoded)} bytes does not fit width {self.width}"
            )
        self._data[index] = encoded


class SampleIndex:
    """Read-only index: catalog, path table, per-image class and class lists.

    ``class_lists[c]`` is the contiguous range of global indices belonging to
    class ``c``. It is computed once at build time and shared by balanced
    sampling and size queries. Nothing here is mutated after construction,
    so the index can be read concurrently by DataLoader workers.
    """

    def __init__(
        self,
        catalog: ClassCatalog,
        paths: PathTable,
        image_class: torch.Tensor,
        class_lists: list[torch.Tensor],
    ) -> None:
        self.catalog = catalog
        self.paths = paths
        self.image_class = image_class
        self.class_lists = class_lists

    @property
    def n_sample(self) -> int:
        return len(self.paths)

    @property
    def num_classes(self) -> int:
        return len(self.catalog)

    def __len__(self) -> int:
        return self.n_sample


def build_index(
    data_paths: Sequence[str],
    enumerator: FileEnumerator | None = None,
    verbose: bool = True,
) -> SampleIndex:
    """Enumerate ``data_paths`` and build the SampleIndex.

    Args:
        data_paths: One or more root directories whose immediate subfolders
            are classes.
        enumerator: Streams the image files under one class folder.
            Defaults to DirectoryEnumerator.
        verbose: Show tqdm progress bars.

    Raises:
        EmptyDatasetError: No image was found at all.
        EmptyClassError: A class folder yielded zero images.
    """
    enumerator = enumerator or DirectoryEnumerator()
    names, folders = find_class_folders(data_paths)
    logger.info(f"found {len(names)} classes")
    catalog = ClassCatalog(names, folders)

    scratch_dir = tempfile.mkdtemp(prefix="imageclass_views_")
    try:
        counts, max_length = _enumerate_to_scratch(
            catalog, enumerator, scratch_dir, verbose
        )
        total = sum(counts)
        if total == 0:
            raise EmptyDatasetError(
                f"Could not find any image file in the given input paths: "
                f"{list(data_paths)}"
            )
        for class_id, count in enumerate(counts):
            if count == 0:
                raise EmptyClassError(
                    f"Class '{catalog.name_of(class_id)}' has zero samples "
                    f"under {list(catalog.folders_of(class_id))}"
                )

        logger.info(f"{total} samples found")
        paths = PathTable(total, max_length + 1)
        image_class = torch.empty(total, dtype=torch.long)
        class_lists: list[torch.Tensor] = []
        offset = 0
        for class_id, count in enumerate(
            tqdm(counts, desc="Indexing", unit="class", disable=not verbose)
        ):
            scratch = _scratch_path(scratch_dir, class_id)
            read = 0
            with open(scratch, "rb") as f:
                for read, record in enumerate(_read_records(f), start=1):
                    if read > count:
                        break
                    paths[offset + read - 1] = record
            if read != count:
                raise ImageClassViewsError(
                    f"scratch list for class '{catalog.name_of(class_id)}' "
                    f"holds {read} paths, expected {count}"
                )
            image_class[offset : offset + count] = class_id
            class_lists.append(torch.arange(offset, offset + count, dtype=torch.long))
            offset += count
    finally:
        shutil.rmtree(scratch_dir, ignore_errors=True)

    logger.debug(
        f"Path table: {len(paths)} x {paths.width} bytes "
        f"({paths.nbytes / 2**20:.1f} MiB)"
    )
    return SampleIndex(catalog, paths, image_class, class_lists)


def _scratch_path(scratch_dir: str, class_id: int) -> str:
    return os.path.join(scratch_dir, f"class_{class_id:08d}.nul")


def _read_records(f: BinaryIO, chunk_size: int = 1 << 20) -> Iterator[bytes]:
    """Stream NUL-terminated records from ``f``.

    NUL is the one byte a POSIX path cannot contain, so names holding
    newlines survive the round trip.
    """
    pending = b""
    while chunk := f.read(chunk_size):
        *records, pending = (pending + chunk).split(b"\0")
        yield from records
    if pending:
        raise ImageClassViewsError("scratch list ends with an unterminated path")


def _enumerate_to_scratch(
    catalog: ClassCatalog,
    enumerator: FileEnumerator,
    scratch_dir: str,
    verbose: bool,
) -> tuple[list[int], int]:
    """First pass: one NUL-separated scratch file per class."""
    counts: list[int] = []
    max_length = 0
    for class_id in tqdm(
        range(len(catalog)), desc="Enumerating", unit="class", disable=not verbose
    ):
        count = 0
        with open(_scratch_path(scratch_dir, class_id), "wb") as f:
            for folder in catalog.folders_of(class_id):
                for path in enumerator.iter_files(folder):
                    encoded = os.fsencode(path)
                    f.write(encoded + b"\0")
                    max_length = max(max_length, len(encoded))
                    count += 1
        logger.debug(f"class '{catalog.name_of(class_id)}': {count} files")
        counts.append(count)
    return counts, max_length

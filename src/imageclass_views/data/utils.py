"""Utility functions for the data pipeline."""

from __future__ import annotations

import os
from collections.abc import Iterator, Sequence
from typing import Protocol

from loguru import logger

IMAGE_EXTENSIONS: tuple[str, ...] = (".jpg", ".jpeg", ".png", ".ppm", ".bmp")


def iter_files(root: str, extensions: tuple[str, ...]) -> Iterator[str]:
    """Lazily yield files under ``root`` whose suffix is in ``extensions``.

    Walks with ``os.scandir`` so only one directory listing is held in memory
    at a time. Entries are visited in sorted name order, so for a fixed tree
    the output order is deterministic. Extension matching is
    case-insensitive. Symlinked files are yielded but symlinked directories
    are not descended into, so a link back to an ancestor cannot loop.
    """
    stack = [root]
    while stack:
        current = stack.pop()
        with os.scandir(current) as it:
            entries = sorted(it, key=lambda e: e.name)
        subdirs: list[str] = []
        for entry in entries:
            if entry.is_dir(follow_symlinks=False):
                subdirs.append(entry.path)
            elif (
                entry.is_file()
                and os.path.splitext(entry.name)[1].lower() in extensions
            ):
                yield entry.path
        # reversed so the lexicographically first subdir is walked first
        stack.extend(reversed(subdirs))


class FileEnumerator(Protocol):
    """Streams every matching image file under one folder."""

    def iter_files(self, folder: str) -> Iterator[str]: ...


class DirectoryEnumerator:
    """Default FileEnumerator backed by a recursive ``os.scandir`` walk.

    Args:
        extensions: Lowercase extensions including the dot.
    """

    def __init__(self, extensions: tuple[str, ...] = IMAGE_EXTENSIONS) -> None:
        self.extensions = tuple(ext.lower() for ext in extensions)

    def iter_files(self, folder: str) -> Iterator[str]:
        return iter_files(folder, self.extensions)


def find_class_folders(
    roots: Sequence[str],
) -> tuple[list[str], list[list[str]]]:
    """Collect class names and their folder paths across ``roots``.

    A folder name becomes a class the first time it is seen; later roots
    holding a folder of the same name contribute additional paths to that
    class. Folders are visited in sorted order within each root. Hidden
    folders are skipped. A symlink directly under a root counts as a class
    folder; links nested deeper are not followed by ``iter_files``.

    Returns:
        ``(class_names, class_paths)`` where ``class_paths[i]`` lists every
        directory contributing to ``class_names[i]``.
    """
    class_names: list[str] = []
    class_paths: list[list[str]] = []
    name_to_id: dict[str, int] = {}
    for root in roots:
        if not os.path.isdir(root):
            raise FileNotFoundError(f"Data path is not a directory: {root}")
        with os.scandir(root) as it:
            entries = sorted(
                (e for e in it if e.is_dir(follow_symlinks=True)),
                key=lambda e: e.name,
            )
        for entry in entries:
            if entry.name.startswith("."):
                logger.debug(f"Skipping hidden folder {entry.path}")
                continue
            idx = name_to_id.get(entry.name)
            if idx is None:
                idx = len(class_names)
                name_to_id[entry.name] = idx
                class_names.append(entry.name)
                class_paths.append([])
            if entry.path not in class_paths[idx]:
                class_paths[idx].append(entry.path)
    return class_names, class_paths

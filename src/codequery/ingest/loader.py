"""File loader: enumerate files under a root, filtered by extension."""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable, Iterator
from pathlib import Path

from loguru import logger

from codequery.errors import LoaderError
from codequery.ingest.models import Failure, Item, fingerprint
from codequery.ingest.stages import Loader


class FileLoader(Loader):
    """Yield an Item per matching file below *root* (recursively, sorted).

    Hidden files and directories (name starting with ``.``) are skipped, as
    are entries matching any *exclude* glob. A file that cannot be read or
    decoded as UTF-8 is yielded as a ``Failure`` (stage ``load``) so the error
    stays visible downstream.

    Args:
        root: Directory (or single file) to load.
        extensions: Extensions without the dot, e.g. ``["rs", "md"]``. Empty
            means every file.
        exclude: fnmatch patterns matched against entry names.
    """

    def __init__(
        self,
        root: Path | str,
        extensions: Iterable[str] = (),
        exclude: Iterable[str] = (),
    ) -> None:
        self.root = Path(root)
        self.extensions = {e.lower().lstrip(".") for e in extensions}
        self.exclude = list(exclude)

    def iter_items(self) -> Iterator[Item | Failure]:
        """Lazily load every matching file.

        Raises:
            LoaderError: If *root* does not exist or cannot be listed.
        """
        if not self.root.exists():
            raise LoaderError(f"Path does not exist: {self.root}")
        if self.root.is_file():
            yield self._load(self.root)
            return
        for path in self._walk(self.root):
            yield self._load(path)

    def _walk(self, directory: Path) -> Iterator[Path]:
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            if directory == self.root:
                raise LoaderError(f"Cannot list {directory}: {exc}") from exc
            logger.warning("Skipping unreadable directory {}: {}", directory, exc)
            return
        for entry in entries:
            if entry.name.startswith(".") or self._excluded(entry.name):
                continue
            if entry.is_dir():
                yield from self._walk(entry)
            elif entry.is_file() and self._matches(entry):
                yield entry

    def _excluded(self, name: str) -> bool:
        return any(fnmatch.fnmatch(name, pat) for pat in self.exclude)

    def _matches(self, path: Path) -> bool:
        return not self.extensions or path.suffix.lower().lstrip(".") in self.extensions

    @staticmethod
    def _load(path: Path) -> Item | Failure:
        try:
            raw = path.read_bytes()
            content = raw.decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            return Failure(error=exc, stage="load", path=str(path))
        return Item(path=str(path), content=content, fingerprint=fingerprint(str(path), raw))

from __future__ import annotations

import logging
import re
import stat
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from urllib.parse import quote

from file_list.services.errors import (
    DirectoryAccessError,
    DirectoryNotFoundError,
    InvalidFilterError,
)
from file_list.services.path_sanitizer import (
    DEFAULT_SORT_KEY,
    SortKey,
    ascend,
    descend,
    sanitize,
    sanitize_sort_key,
)

logger = logging.getLogger("file_list.listing")

# Builds a URL for the current request with one query parameter overridden.
LinkBuilder = Callable[[str, str], str]


class EntryKind(str, Enum):
    DIRECTORY = "directory"
    FILE = "file"
    PARENT = "parent"


@dataclass(frozen=True)
class FileEntry:
    """Metadata describing an entry in the listed directory."""

    path: Path
    kind: EntryKind
    size: int | None = None
    modified_at: float | None = None
    target: str | None = None

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def is_dir(self) -> bool:
        return self.kind is not EntryKind.FILE

    def bind(self, target: str) -> FileEntry:
        """Return a copy carrying its navigation or download link."""

        if self.target is not None:
            raise ValueError(f"Entry '{self.name}' already has a target")
        return replace(self, target=target)


@dataclass(frozen=True)
class NavigationState:
    """Resolved request context for one embedded listing."""

    root_directory: Path
    root_url: str
    listing_id: str
    requested_sub_path: str
    sub_path: str
    sort_key: SortKey = DEFAULT_SORT_KEY
    filter_pattern: re.Pattern[str] | None = None

    @classmethod
    def from_query(
        cls,
        root_directory: Path,
        root_url: str,
        listing_id: str,
        query: Mapping[str, str],
        *,
        default_sorting: str = DEFAULT_SORT_KEY.value,
        filter_pattern: str = "",
    ) -> NavigationState:
        """Validate the untrusted query parameters against the trusted configuration."""

        prefix = param_prefix(listing_id)
        requested = query.get(f"{prefix}_sub", "")
        sorting = query.get(f"{prefix}_sorting", default_sorting)

        try:
            sub_path = sanitize(requested)
        except DirectoryAccessError:
            logger.warning("Blocked traversal above root %s: %r", root_directory, requested)
            raise

        compiled = None
        if filter_pattern:
            try:
                compiled = re.compile(filter_pattern)
            except re.error as exc:
                raise InvalidFilterError(f"Invalid filter '{filter_pattern}': {exc}") from exc

        return cls(
            root_directory=root_directory,
            root_url=root_url.rstrip("/"),
            listing_id=listing_id,
            requested_sub_path=requested,
            sub_path=sub_path,
            sort_key=sanitize_sort_key(sorting),
            filter_pattern=compiled,
        )

    @property
    def sub_param(self) -> str:
        return f"{param_prefix(self.listing_id)}_sub"

    @property
    def sorting_param(self) -> str:
        return f"{param_prefix(self.listing_id)}_sorting"

    @property
    def current_directory(self) -> Path:
        if not self.sub_path:
            return self.root_directory
        return self.root_directory / self.sub_path

    @property
    def current_url(self) -> str:
        if not self.sub_path:
            return self.root_url
        segments = "/".join(quote(part, safe="") for part in self.sub_path.split("/"))
        return f"{self.root_url}/{segments}"

    def accepts(self, entry: FileEntry) -> bool:
        if entry.is_dir or self.filter_pattern is None:
            return True
        return self.filter_pattern.search(entry.name) is not None


@dataclass(frozen=True)
class Listing:
    state: NavigationState
    entries: tuple[FileEntry, ...]
    show_size: bool = True
    show_mtime: bool = False


def param_prefix(listing_id: str) -> str:
    return f"filelist_{listing_id}"


def _ensure_within_base(base: Path, target: Path) -> Path:
    base = base.resolve()
    if base == target or base in target.parents:
        return target
    raise DirectoryAccessError("Cannot traverse above root folder.")


def resolve_directory(state: NavigationState) -> Path:
    """Return the canonical current directory, confined to the listing root."""

    try:
        target = state.current_directory.resolve(strict=True)
    except (OSError, RuntimeError, ValueError) as exc:
        raise DirectoryNotFoundError("The path is not a directory.") from exc
    if not target.is_dir():
        raise DirectoryNotFoundError("The path is not a directory.")

    try:
        _ensure_within_base(state.root_directory, target)
    except DirectoryAccessError:
        logger.warning(
            "Blocked symlink escape from root %s to %s", state.root_directory, target
        )
        raise
    logger.debug("Resolved listing directory %s", target)
    return target


def _retrieve(path: Path) -> FileEntry:
    info = path.stat()
    if stat.S_ISDIR(info.st_mode):
        return FileEntry(path=path, kind=EntryKind.DIRECTORY, modified_at=info.st_mtime)
    return FileEntry(
        path=path,
        kind=EntryKind.FILE,
        size=info.st_size,
        modified_at=info.st_mtime,
    )


def collect_entries(
    directory: Path, state: NavigationState, link_builder: LinkBuilder
) -> tuple[list[FileEntry], list[FileEntry]]:
    """Split the visible children of ``directory`` into directories and files."""

    directories: list[FileEntry] = []
    files: list[FileEntry] = []
    for item in directory.iterdir():
        if item.name.startswith("."):
            continue
        try:
            entry = _retrieve(item)
        except OSError as exc:
            logger.debug("Skipping unreadable entry %s: %s", item, exc)
            continue

        if not state.accepts(entry):
            continue

        if entry.is_dir:
            directories.append(
                entry.bind(link_builder(state.sub_param, descend(state.sub_path, entry.name)))
            )
        else:
            files.append(entry.bind(f"{state.current_url}/{quote(entry.name, safe='')}"))
    return directories, files


def parent_entry(
    directory: Path, state: NavigationState, link_builder: LinkBuilder
) -> FileEntry | None:
    """Return the ``..`` link, or ``None`` at the listing root."""

    if not state.sub_path:
        return None
    entry = FileEntry(path=directory / "..", kind=EntryKind.PARENT)
    return entry.bind(link_builder(state.sub_param, ascend(state.sub_path)))


def _size_key(entry: FileEntry) -> int:
    return entry.size if entry.size is not None else -1


def _mtime_key(entry: FileEntry) -> float:
    return entry.modified_at if entry.modified_at is not None else -1.0


_SORT_FIELDS: dict[str, Callable[[FileEntry], tuple]] = {
    "name": lambda entry: (entry.name,),
    "mtime": lambda entry: (_mtime_key(entry), entry.name),
    "size": lambda entry: (_size_key(entry), entry.name),
}


def sort_entries(entries: list[FileEntry], sort_key: SortKey | str) -> list[FileEntry]:
    """Return a sorted copy; descending keys also order name ties descending."""

    key = sanitize_sort_key(sort_key)
    return sorted(entries, key=_SORT_FIELDS[key.field], reverse=key.descending)


def build_listing(
    state: NavigationState,
    link_builder: LinkBuilder,
    *,
    show_size: bool = True,
    show_mtime: bool = False,
) -> Listing:
    """Return the listing (parent link, dirs, then files) for the requested directory."""

    directory = resolve_directory(state)
    directories, files = collect_entries(directory, state, link_builder)

    entries: list[FileEntry] = []
    parent = parent_entry(directory, state, link_builder)
    if parent is not None:
        entries.append(parent)
    entries.extend(sort_entries(directories, state.sort_key))
    entries.extend(sort_entries(files, state.sort_key))

    logger.debug(
        "Listed %s: %d directories, %d files, sorted by %s",
        directory,
        len(directories),
        len(files),
        state.sort_key.value,
    )
    return Listing(
        state=state,
        entries=tuple(entries),
        show_size=show_size,
        show_mtime=show_mtime,
    )

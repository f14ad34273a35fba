from __future__ import annotations

from enum import Enum

from file_list.services.errors import DirectoryAccessError

SEPARATOR = "/"


class SortKey(str, Enum):
    """Sorting field and direction accepted in the ``_sorting`` query parameter."""

    NAME_ASC = "name_asc"
    NAME_DES = "name_des"
    MTIME_ASC = "mtime_asc"
    MTIME_DES = "mtime_des"
    SIZE_ASC = "size_asc"
    SIZE_DES = "size_des"

    @property
    def field(self) -> str:
        return self.value.rsplit("_", 1)[0]

    @property
    def descending(self) -> bool:
        return self.value.endswith("_des")

    def reversed(self) -> SortKey:
        suffix = "asc" if self.descending else "des"
        return SortKey(f"{self.field}_{suffix}")


DEFAULT_SORT_KEY = SortKey.NAME_ASC


def sanitize(raw_path: str, separator: str = SEPARATOR) -> str:
    """Normalise an untrusted sub-path relative to the listing root.

    ``.`` and empty segments are dropped and ``..`` removes the previously kept
    segment. A ``..`` with nothing left to remove would leave the root, so it
    raises :class:`DirectoryAccessError`. Other segments are kept verbatim.
    """

    kept: list[str] = []
    for segment in raw_path.split(separator):
        if segment in ("", "."):
            continue
        if segment == "..":
            if not kept:
                raise DirectoryAccessError("Cannot traverse above root folder.")
            kept.pop()
            continue
        kept.append(segment)
    return separator.join(kept)


def sanitize_sort_key(raw: str | SortKey | None) -> SortKey:
    """Return the matching sort key, or the default for anything unrecognised."""

    if isinstance(raw, SortKey):
        return raw
    try:
        return SortKey(raw)
    except ValueError:
        return DEFAULT_SORT_KEY


def descend(sub_path: str, name: str) -> str:
    return sanitize(f"{sub_path}{SEPARATOR}{name}")


def ascend(sub_path: str) -> str:
    return sanitize(f"{sub_path}{SEPARATOR}..")

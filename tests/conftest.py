from __future__ import annotations

import os
from pathlib import Path

import pytest

from file_list.services.file_catalog import NavigationState, param_prefix

LISTING_ID = "7xroot"


def _touch(path: Path, size: int = 0, mtime: float | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def touch():
    return _touch


@pytest.fixture
def link_builder():
    def build(key: str, value: str) -> str:
        return f"?{key}={value}"

    return build


@pytest.fixture
def root(tmp_path: Path) -> Path:
    data = tmp_path / "data"
    (data / "photos").mkdir(parents=True)
    _touch(data / "readme.txt", size=12)
    return data


@pytest.fixture
def make_state(root: Path):
    prefix = param_prefix(LISTING_ID)

    def factory(sub: str | None = None, sorting: str | None = None, **kwargs) -> NavigationState:
        query = {}
        if sub is not None:
            query[f"{prefix}_sub"] = sub
        if sorting is not None:
            query[f"{prefix}_sorting"] = sorting
        return NavigationState.from_query(root, "/storage/data", LISTING_ID, query, **kwargs)

    return factory

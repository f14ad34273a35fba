from __future__ import annotations

import os
from pathlib import Path

import pytest

from file_list.services.errors import (
    DirectoryAccessError,
    DirectoryNotFoundError,
    InvalidFilterError,
)
from file_list.services.file_catalog import (
    EntryKind,
    FileEntry,
    NavigationState,
    build_listing,
    resolve_directory,
    sort_entries,
)
from file_list.services.path_sanitizer import SortKey


def _names(listing):
    return [(entry.name, entry.kind) for entry in listing.entries]


def _file(name: str, size: int = 0, mtime: float = 0.0) -> FileEntry:
    return FileEntry(path=Path("/data") / name, kind=EntryKind.FILE, size=size, modified_at=mtime)


def _dir(name: str, mtime: float = 0.0) -> FileEntry:
    return FileEntry(path=Path("/data") / name, kind=EntryKind.DIRECTORY, modified_at=mtime)


def test_state_reads_scoped_query_parameters(make_state):
    state = make_state(sub="photos//./2020/..", sorting="size_des")

    assert state.requested_sub_path == "photos//./2020/.."
    assert state.sub_path == "photos"
    assert state.sort_key is SortKey.SIZE_DES
    assert state.sub_param == "filelist_7xroot_sub"
    assert state.sorting_param == "filelist_7xroot_sorting"
    assert state.current_url == "/storage/data/photos"


def test_state_ignores_parameters_of_other_listings(root):
    state = NavigationState.from_query(
        root, "/storage/data", "other", {"filelist_7xroot_sub": "photos"}
    )
    assert state.sub_path == ""


def test_state_sorting_defaults_and_fallback(make_state):
    assert make_state().sort_key is SortKey.NAME_ASC
    assert make_state(default_sorting="mtime_des").sort_key is SortKey.MTIME_DES
    assert make_state(sorting="bogus", default_sorting="mtime_des").sort_key is SortKey.NAME_ASC


def test_state_rejects_lexical_escape(make_state):
    with pytest.raises(DirectoryAccessError):
        make_state(sub="a/../../etc")


def test_state_rejects_invalid_filter(make_state):
    with pytest.raises(InvalidFilterError):
        make_state(filter_pattern="([a-z")


def test_current_url_quotes_segments(make_state, root):
    (root / "my photos" / "2020 #1").mkdir(parents=True)
    state = make_state(sub="my photos/2020 #1")
    assert state.current_url == "/storage/data/my%20photos/2020%20%231"


def test_resolve_directory_missing_or_file(make_state):
    with pytest.raises(DirectoryNotFoundError):
        resolve_directory(make_state(sub="nope"))
    with pytest.raises(DirectoryNotFoundError):
        resolve_directory(make_state(sub="readme.txt"))


def test_resolve_directory_returns_canonical_path(make_state, root):
    assert resolve_directory(make_state(sub="photos")) == (root / "photos").resolve()
    assert resolve_directory(make_state()) == root.resolve()


def test_resolve_directory_blocks_symlink_escape(make_state, root, tmp_path):
    outside = tmp_path / "secret"
    outside.mkdir()
    try:
        os.symlink(outside, root / "escape", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks are not supported here")

    with pytest.raises(DirectoryAccessError):
        resolve_directory(make_state(sub="escape"))


def test_resolve_directory_blocks_sibling_with_common_prefix(root, tmp_path):
    sibling = tmp_path / "data2"
    sibling.mkdir()
    try:
        os.symlink(sibling, root / "next", target_is_directory=True)
    except (OSError, NotImplementedError):
        pytest.skip("symlinks are not supported here")

    state = NavigationState.from_query(root, "/storage", "x", {"filelist_x_sub": "next"})
    with pytest.raises(DirectoryAccessError):
        resolve_directory(state)


def test_listing_puts_directories_before_files(make_state, link_builder):
    listing = build_listing(make_state(), link_builder)

    assert _names(listing) == [
        ("photos", EntryKind.DIRECTORY),
        ("readme.txt", EntryKind.FILE),
    ]
    photos, readme = listing.entries
    assert photos.size is None
    assert photos.modified_at is not None
    assert readme.size == 12


def test_listing_targets(make_state, link_builder, root, touch):
    touch(root / "photos" / "a b.jpg")
    (root / "photos" / "2020").mkdir()

    listing = build_listing(make_state(sub="photos"), link_builder)
    parent, album, image = listing.entries

    assert parent.kind is EntryKind.PARENT
    assert parent.name == ".."
    assert parent.target == "?filelist_7xroot_sub="
    assert album.target == "?filelist_7xroot_sub=photos/2020"
    assert image.target == "/storage/data/photos/a%20b.jpg"


def test_parent_link_carries_sentinels(make_state, link_builder):
    parent = build_listing(make_state(sub="photos"), link_builder).entries[0]
    assert parent.size is None
    assert parent.modified_at is None


def test_no_parent_link_at_root(make_state, link_builder):
    listing = build_listing(make_state(sub="./"), link_builder)
    assert all(entry.kind is not EntryKind.PARENT for entry in listing.entries)


def test_hidden_entries_are_skipped(make_state, link_builder, root, touch):
    touch(root / ".htaccess")
    (root / ".git").mkdir()

    names = [entry.name for entry in build_listing(make_state(), link_builder).entries]
    assert names == ["photos", "readme.txt"]


def test_unreadable_entries_are_skipped(make_state, link_builder, root):
    try:
        os.symlink(root / "gone", root / "dangling")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks are not supported here")

    names = [entry.name for entry in build_listing(make_state(), link_builder).entries]
    assert names == ["photos", "readme.txt"]


def test_filter_applies_to_files_only(make_state, link_builder, root, touch):
    (root / "archive.txt").mkdir()
    touch(root / "image.png")
    touch(root / "notes.txt")

    listing = build_listing(make_state(filter_pattern=r"\.txt$"), link_builder)
    assert _names(listing) == [
        ("archive.txt", EntryKind.DIRECTORY),
        ("photos", EntryKind.DIRECTORY),
        ("notes.txt", EntryKind.FILE),
        ("readme.txt", EntryKind.FILE),
    ]


def test_listing_flags_are_carried(make_state, link_builder):
    listing = build_listing(make_state(), link_builder, show_size=False, show_mtime=True)
    assert not listing.show_size
    assert listing.show_mtime


def test_mtime_des_orders_ties_by_descending_name(make_state, link_builder, root, touch):
    touch(root / "alpha.txt", mtime=1_600_000_000)
    touch(root / "beta.txt", mtime=1_600_000_000)
    touch(root / "newest.txt", mtime=1_700_000_000)
    touch(root / "readme.txt", size=12, mtime=1_500_000_000)

    listing = build_listing(make_state(sorting="mtime_des"), link_builder)
    files = [entry.name for entry in listing.entries if entry.kind is EntryKind.FILE]
    assert files == ["newest.txt", "beta.txt", "alpha.txt", "readme.txt"]


def test_size_sorting_never_interleaves_buckets(make_state, link_builder, root, touch):
    (root / "zeta").mkdir()
    touch(root / "big.bin", size=2048)
    touch(root / "empty.bin")

    listing = build_listing(make_state(sorting="size_des"), link_builder)
    assert _names(listing) == [
        ("zeta", EntryKind.DIRECTORY),
        ("photos", EntryKind.DIRECTORY),
        ("big.bin", EntryKind.FILE),
        ("readme.txt", EntryKind.FILE),
        ("empty.bin", EntryKind.FILE),
    ]


def test_binding_a_target_twice_fails():
    entry = _file("a.txt").bind("/a.txt")
    with pytest.raises(ValueError):
        entry.bind("/b.txt")


def test_sort_name_des_is_reverse_of_name_asc():
    entries = [_file("b"), _file("a"), _file("C"), _file("é"), _file("a1")]
    ascending = sort_entries(entries, SortKey.NAME_ASC)
    assert [e.name for e in ascending] == ["C", "a", "a1", "b", "é"]
    assert sort_entries(entries, SortKey.NAME_DES) == list(reversed(ascending))


def test_size_sort_of_directories_degenerates_to_name_sort():
    entries = [_dir("m"), _dir("b"), _dir("x")]
    assert sort_entries(entries, SortKey.SIZE_ASC) == sort_entries(entries, SortKey.NAME_ASC)
    assert sort_entries(entries, SortKey.SIZE_DES) == sort_entries(entries, SortKey.NAME_DES)


def test_ascending_keys_break_ties_by_ascending_name():
    entries = [_file("b", size=1, mtime=5), _file("a", size=1, mtime=5), _file("c", size=0, mtime=9)]
    assert [e.name for e in sort_entries(entries, "size_asc")] == ["c", "a", "b"]
    assert [e.name for e in sort_entries(entries, "mtime_asc")] == ["a", "b", "c"]
    assert [e.name for e in sort_entries(entries, "size_des")] == ["b", "a", "c"]


def test_sort_entries_returns_a_copy():
    entries = [_file("b"), _file("a")]
    sort_entries(entries, SortKey.NAME_ASC)
    assert [e.name for e in entries] == ["b", "a"]

from __future__ import annotations

from datetime import datetime
from html import escape

from file_list.services.file_catalog import (
    EntryKind,
    FileEntry,
    LinkBuilder,
    Listing,
    NavigationState,
)
from file_list.services.path_sanitizer import SortKey, sanitize

_SIZE_UNITS = (
    (2**50, "PiB"),
    (2**40, "TiB"),
    (2**30, "GiB"),
    (2**20, "MiB"),
    (2**10, "kiB"),
)

_ICONS = {
    EntryKind.DIRECTORY: "<span class='oi oi-folder' aria-hidden='true'></span>",
    EntryKind.PARENT: "<span class='oi oi-folder' aria-hidden='true'></span>",
    EntryKind.FILE: "<span class='oi oi-document' aria-hidden='true'></span>",
}


def _trim(value: float, precision: int) -> str:
    text = f"{value:.{precision}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def human_readable_size(size: int | None, precision: int = 2) -> str:
    """Format a byte count with the closest binary prefix, ``-`` when there is none."""

    if size is None or size < 0:
        return "-"
    for threshold, unit in _SIZE_UNITS:
        if size >= threshold:
            return f"{_trim(size / threshold, precision)} {unit}"
    return f"{size} Bytes"


def mtime_string(modified_at: float | None) -> str:
    if modified_at is None or modified_at < 0:
        return "-"
    return datetime.fromtimestamp(modified_at).astimezone().strftime("%Y-%m-%d, %H:%M:%S %z")


def _build_breadcrumbs(state: NavigationState, link_builder: LinkBuilder) -> list[tuple[str, str]]:
    crumbs = [(" /", link_builder(state.sub_param, ""))]  # (label, href)
    running: list[str] = []
    for part in state.sub_path.split("/"):
        if not part:
            continue
        running.append(part)
        crumbs.append((f"{part} /", link_builder(state.sub_param, sanitize("/".join(running)))))
    return crumbs


def location_html(state: NavigationState, link_builder: LinkBuilder) -> str:
    links = " &nbsp; ".join(
        f"{_ICONS[EntryKind.DIRECTORY]} <a href='{escape(href)}'>{escape(label)}</a>"
        for label, href in _build_breadcrumbs(state, link_builder)
    )
    return f"<p><strong>Location: &nbsp; {links}</strong></p>"


def header_link(state: NavigationState, label: str, field: str, link_builder: LinkBuilder) -> str:
    """Column heading that toggles the direction of its own field."""

    current = state.sort_key
    if current.field == field:
        caret = "oi-caret-bottom" if current.descending else "oi-caret-top"
        href = link_builder(state.sorting_param, current.reversed().value)
        return (
            f"<a href='{escape(href)}'><span class='oi {caret}' aria-hidden='true'></span> "
            f"{escape(label)}</a>"
        )
    href = link_builder(state.sorting_param, SortKey(f"{field}_asc").value)
    return f"<a href='{escape(href)}'>{escape(label)}</a>"


def _row(entry: FileEntry, listing: Listing) -> str:
    cells = [
        f"<td>{_ICONS[entry.kind]}</td>",
        f"<td><a href='{escape(entry.target or '')}'>{escape(entry.name)}</a></td>",
    ]
    if listing.show_size:
        cells.append(f"<td>{human_readable_size(entry.size)}</td>")
    if listing.show_mtime:
        cells.append(f"<td>{mtime_string(entry.modified_at)}</td>")
    return f"<tr>{''.join(cells)}</tr>"


def render_fragment(listing: Listing, link_builder: LinkBuilder) -> str:
    """Render the location line and the file table for an embedded listing."""

    state = listing.state
    heads = [
        "<th width='30'></th>",
        f"<th>{header_link(state, 'Name', 'name', link_builder)}</th>",
    ]
    if listing.show_size:
        heads.append(f"<th width='20%'>{header_link(state, 'Size', 'size', link_builder)}</th>")
    if listing.show_mtime:
        heads.append(f"<th width='30%'>{header_link(state, 'Modified', 'mtime', link_builder)}</th>")

    rows = "".join(_row(entry, listing) for entry in listing.entries)
    return (
        location_html(state, link_builder)
        + "<table class='table'>"
        + f"<thead><tr>{''.join(heads)}</tr></thead>"
        + f"<tbody>{rows}</tbody>"
        + "</table>"
    )

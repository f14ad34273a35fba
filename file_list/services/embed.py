from __future__ import annotations

import hashlib
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from file_list.services.errors import ListingError, MissingRootError
from file_list.services.file_catalog import LinkBuilder, NavigationState, build_listing
from file_list.services.path_sanitizer import DEFAULT_SORT_KEY
from file_list.services.presentation import render_fragment

logger = logging.getLogger("file_list.embed")

ERROR_PREFIX = "File list error: "

# Maps a configured folder to its absolute directory and public URL.
RootResolver = Callable[[str], tuple[Path, str]]


@dataclass(frozen=True)
class ListingConfig:
    """Trusted settings of one embedded listing."""

    folder: str | None = None
    filter: str = ""
    sorting: str = DEFAULT_SORT_KEY.value
    show_size: bool = True
    show_mtime: bool = False


def listing_id(page_id: str, folder: str) -> str:
    """Identifier scoping the query parameters of one listing on a page.

    Two listings of the same folder on one page share the identifier and
    therefore navigate together.
    """

    digest = hashlib.md5(folder.encode("utf-8"), usedforsecurity=False).hexdigest()
    return f"{page_id}x{digest}"


def render(
    config: ListingConfig,
    *,
    page_id: str,
    query: Mapping[str, str],
    resolve_root: RootResolver,
    link_builder: LinkBuilder,
) -> str:
    """Return the HTML fragment for ``config``, or a one-line error message."""

    try:
        if not config.folder:
            raise MissingRootError('"folder" is not configured.')

        root_directory, root_url = resolve_root(config.folder)
        state = NavigationState.from_query(
            root_directory,
            root_url,
            listing_id(page_id, config.folder),
            query,
            default_sorting=config.sorting,
            filter_pattern=config.filter,
        )
        listing = build_listing(
            state,
            link_builder,
            show_size=config.show_size,
            show_mtime=config.show_mtime,
        )
    except ListingError as exc:
        logger.warning("Listing of %r failed: %s", config.folder, exc)
        return f"{ERROR_PREFIX}{exc}"
    except OSError as exc:
        logger.exception("Listing of %r could not read the filesystem", config.folder)
        return f"{ERROR_PREFIX}{exc.strerror or 'Cannot read directory.'}"

    return render_fragment(listing, link_builder)

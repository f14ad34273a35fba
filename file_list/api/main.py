from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from html import escape
from pathlib import Path
from urllib.parse import quote, urlencode

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse
from fastapi.staticfiles import StaticFiles

from file_list.services.embed import ListingConfig, render

ROOT_DIR = Path(__file__).resolve().parents[2]
STATIC_DIR = ROOT_DIR / "static"
FAVICON_PATH = STATIC_DIR / "favicon.ico"

UPLOAD_DIR_ENV = "FILE_LIST_UPLOAD_DIR"
BASE_URL_ENV = "FILE_LIST_BASE_URL"
FOLDERS_ENV = "FILE_LIST_FOLDERS"
FILTER_ENV = "FILE_LIST_FILTER"
SORTING_ENV = "FILE_LIST_SORTING"
SHOW_SIZE_ENV = "FILE_LIST_SHOW_SIZE"
SHOW_MTIME_ENV = "FILE_LIST_SHOW_MTIME"
PAGE_ID_ENV = "FILE_LIST_PAGE_ID"
LOG_LEVEL_ENV = "FILE_LIST_LOG_LEVEL"

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


def _env_folders(raw: str) -> tuple[str | None, ...]:
    folders = tuple(part.strip() for part in raw.split(",") if part.strip())
    # An empty list still renders one listing, which reports the missing folder.
    return folders or (None,)


@dataclass(frozen=True)
class Settings:
    upload_dir: Path
    base_url: str = "/storage"
    folders: tuple[str | None, ...] = ("files",)
    filter: str = ""
    sorting: str = "name_asc"
    show_size: bool = True
    show_mtime: bool = False
    page_id: str = "index"
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        return cls(
            upload_dir=Path(env.get(UPLOAD_DIR_ENV) or ROOT_DIR / "storage"),
            base_url="/" + (env.get(BASE_URL_ENV) or "/storage").strip("/"),
            folders=_env_folders(env.get(FOLDERS_ENV, "files")),
            filter=env.get(FILTER_ENV, ""),
            sorting=env.get(SORTING_ENV) or "name_asc",
            show_size=_env_flag(env, SHOW_SIZE_ENV, True),
            show_mtime=_env_flag(env, SHOW_MTIME_ENV, False),
            page_id=env.get(PAGE_ID_ENV) or "index",
            log_level=(env.get(LOG_LEVEL_ENV) or "INFO").upper(),
        )

    def listing_configs(self) -> list[ListingConfig]:
        return [
            ListingConfig(
                folder=folder,
                filter=self.filter,
                sorting=self.sorting,
                show_size=self.show_size,
                show_mtime=self.show_mtime,
            )
            for folder in self.folders
        ]


class QueryLinkBuilder:
    """Builds links to the current page with one query parameter replaced."""

    def __init__(self, path: str, query: Mapping[str, str]):
        self._path = path
        self._query = dict(query)

    def __call__(self, key: str, value: str) -> str:
        params = {**self._query, key: value}
        return f"{self._path}?{urlencode(params, quote_via=quote)}"


def _configure_logging(level: str) -> logging.Logger:
    logger = logging.getLogger("file_list")
    logger.setLevel(getattr(logging, level, logging.INFO))
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(levelname)s %(name)s - %(message)s"))
        logger.addHandler(handler)
    return logger


def _root_resolver(settings: Settings):
    def resolve_root(folder: str) -> tuple[Path, str]:
        trimmed = folder.strip("/")
        if not trimmed:
            return settings.upload_dir, settings.base_url
        return settings.upload_dir / trimmed, f"{settings.base_url.rstrip('/')}/{quote(trimmed)}"

    return resolve_root


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    settings.upload_dir.mkdir(parents=True, exist_ok=True)

    logger = _configure_logging(settings.log_level)
    logger.getChild("api").info(
        "Serving %d listing(s) from %s at %s",
        len(settings.folders),
        settings.upload_dir,
        settings.base_url,
    )

    app = FastAPI(
        title="File List",
        description="Sortable, filterable directory listings confined to a root folder.",
        version="0.1.0",
    )
    resolve_root = _root_resolver(settings)

    @app.middleware("http")
    async def add_csp_header(request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault(
            "Content-Security-Policy",
            "default-src 'self'; style-src 'self' 'unsafe-inline';",
        )
        return response

    @app.get("/", response_class=HTMLResponse)
    async def page(request: Request):
        query = dict(request.query_params)
        link_builder = QueryLinkBuilder(request.url.path, query)
        fragments = [
            render(
                config,
                page_id=settings.page_id,
                query=query,
                resolve_root=resolve_root,
                link_builder=link_builder,
            )
            for config in settings.listing_configs()
        ]
        sections = "".join(f"<section class='file-list'>{fragment}</section>" for fragment in fragments)

        return HTMLResponse(
            content=f"""
            <!DOCTYPE html>
            <html lang='en'>
            <head>
                <meta charset='utf-8'>
                <title>{escape(app.title)}</title>
                <link rel='icon' href='/favicon.ico' type='image/x-icon'>
                <style>
                    body {{ font-family: Arial, sans-serif; margin: 2rem; }}
                    table {{ width: 100%; border-collapse: collapse; margin-top: 1rem; }}
                    th, td {{ text-align: left; padding: 0.5rem; border-bottom: 1px solid #ddd; }}
                    a {{ color: #0a5ec2; text-decoration: none; }}
                    a:hover {{ text-decoration: underline; }}
                    .file-list {{ margin-bottom: 2rem; }}
                </style>
            </head>
            <body>
                <h1>{escape(app.title)}</h1>
                {sections}
            </body>
            </html>
            """
        )

    @app.get("/favicon.ico")
    async def favicon():
        if not FAVICON_PATH.exists():
            raise HTTPException(status_code=404, detail="Favicon not found")
        return FileResponse(path=FAVICON_PATH, media_type="image/x-icon")

    # Linked files are plain downloads under the base URL.
    app.mount(settings.base_url, StaticFiles(directory=settings.upload_dir), name="storage")
    return app


app = create_app()

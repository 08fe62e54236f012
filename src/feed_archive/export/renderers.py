"""Renderers turn a resolved export bundle into a deliverable file."""

from __future__ import annotations

import json
import re
import zipfile
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from feed_archive.export.runner import JobHandle
from feed_archive.models import ExportBundle, ExportFormat, ExportItem

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]+')
_MAX_FILENAME_CHARS = 120

ProgressCallback = Callable[[int], None]


class ExportRenderer(Protocol):
    def render(
        self,
        bundle: ExportBundle,
        destination: Path,
        *,
        handle: JobHandle,
        on_progress: ProgressCallback,
    ) -> None: ...


class ArchiveRenderer:
    """Packs cached content into a ZIP archive without reformatting it.

    HTML jobs get the stored snapshot bytes when one exists; every other
    item is written as a JSON document with the article payload, metadata
    and comments. Format-specific renderers replace this per format.
    """

    def render(
        self,
        bundle: ExportBundle,
        destination: Path,
        *,
        handle: JobHandle,
        on_progress: ProgressCallback,
    ) -> None:
        used_names: set[str] = set()
        with zipfile.ZipFile(destination, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for index, item in enumerate(bundle.items, start=1):
                handle.raise_if_canceled()
                if bundle.format is ExportFormat.HTML and item.html is not None:
                    name = _unique_name(_item_title(item), ".html", used_names)
                    archive.writestr(name, item.html.file)
                else:
                    name = _unique_name(_item_title(item), ".json", used_names)
                    archive.writestr(
                        name,
                        json.dumps(_item_document(item), ensure_ascii=False, indent=2),
                    )
                on_progress(index)
            if bundle.missing_links:
                archive.writestr("missing_links.txt", "\n".join(bundle.missing_links) + "\n")


def default_renderers() -> dict[ExportFormat, ExportRenderer]:
    renderer = ArchiveRenderer()
    return {export_format: renderer for export_format in ExportFormat}


def sanitize_file_name(value: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", value).strip(" ._")
    return cleaned[:_MAX_FILENAME_CHARS] or "untitled"


def _item_title(item: ExportItem) -> str:
    if item.html is not None and item.html.title:
        return item.html.title
    title = item.article.payload.get("title")
    if isinstance(title, str) and title:
        return title
    return item.article.key


def _unique_name(title: str, suffix: str, used: set[str]) -> str:
    base = sanitize_file_name(title)
    name = f"{base}{suffix}"
    counter = 2
    while name in used:
        name = f"{base} ({counter}){suffix}"
        counter += 1
    used.add(name)
    return name


def _item_document(item: ExportItem) -> dict[str, object]:
    article = item.article
    return {
        **article.payload,
        "key": article.key,
        "account_id": article.account_id,
        "article_id": article.article_id,
        "link": article.link,
        "create_time": article.create_time,
        "metadata": item.metadata.data if item.metadata is not None else None,
        "comments": item.comment.data if item.comment is not None else None,
    }

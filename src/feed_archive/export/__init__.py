"""Export job pipeline boundary over the cache stores."""

from feed_archive.export.renderers import ArchiveRenderer, ExportRenderer
from feed_archive.export.runner import BackgroundJobRunner, JobHandle
from feed_archive.export.service import ExportService

__all__ = [
    "ArchiveRenderer",
    "BackgroundJobRunner",
    "ExportRenderer",
    "ExportService",
    "JobHandle",
]

"""Rendered job templates persistence and cleanup."""

from __future__ import annotations

from fleetwarden.templates.blobstore import BlobStore, TemplateRenderer
from fleetwarden.templates.cleaner import RenderedJobTemplatesCleaner
from fleetwarden.templates.persister import (
    RenderedTemplatesPersister,
    build_archive,
    content_sha1,
)

__all__ = [
    "BlobStore",
    "RenderedJobTemplatesCleaner",
    "RenderedTemplatesPersister",
    "TemplateRenderer",
    "build_archive",
    "content_sha1",
]

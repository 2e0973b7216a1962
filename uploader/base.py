"""
Base uploader.

An uploader owns at most one file. Content is first cached under
CACHE_DIR (cheap, reversible), then stored durably through the configured
storage backend. Subclasses customize it through class attributes
(allowed extensions, size range, storage, error policy) and by
overriding `process` and `store_dir`.
"""

import itertools
import logging
import os
import random
import re
import shutil
import time
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

import httpx

from core.config import get_settings
from uploader.errors import DownloadError, IntegrityError, InvalidParameter, ProcessingError
from uploader.sanitized_file import RemoteFile, SanitizedFile
from uploader.storage import STORAGE_ENGINES, FileStorage

logger = logging.getLogger(__name__)

CACHE_ID_REGEXP = re.compile(r"\d+-\d+-\d{4}-\d{4}")
CACHE_FILENAME_REGEXP = re.compile(r"[a-zA-Z0-9\.\-\+_]+")
CONTENT_DISPOSITION_REGEXP = re.compile(r'filename="?([^";]+)"?')

_cache_counter = itertools.count(1)


def generate_cache_id() -> str:
    """Unique-enough id for a cache directory: <epoch>-<pid>-<counter>-<random>"""
    counter = next(_cache_counter) % 10000
    return f"{int(time.time())}-{os.getpid()}-{counter:04d}-{random.randint(0, 9999):04d}"


def _underscore(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


class Uploader:
    """
    Caches, stores, retrieves and removes a single file for a model attribute.
    """

    # "file" or "s3"; None uses the STORAGE setting
    storage: str | None = None
    # Discard the cached copy once the file is stored
    move_to_store = True

    ignore_integrity_errors = False
    ignore_processing_errors = False
    ignore_download_errors = False
    remove_previously_stored_files_after_update = True

    # e.g. ("jpg", "png"); None allows everything
    extension_allowlist: tuple[str, ...] | None = None
    # (min_bytes, max_bytes); None allows every size
    size_range: tuple[int, int] | None = None

    def __init__(self, model=None, mounted_as: str | None = None):
        self.model = model
        self.mounted_as = mounted_as
        self.file = None
        self.cache_id: str | None = None
        self.original_filename: str | None = None
        self._filename: str | None = None
        self._identifier: str | None = None
        self._storage_engine = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} mounted_as={self.mounted_as!r} identifier={self.identifier!r}>"

    @property
    def blank(self) -> bool:
        return self.file is None

    @property
    def present(self) -> bool:
        return self.file is not None

    @property
    def cached(self) -> bool:
        return self.cache_id is not None

    @property
    def filename(self) -> str | None:
        return self._filename

    @property
    def identifier(self) -> str | None:
        """The string written to the model column; stable once stored."""
        if self.file is None:
            return None
        return self._identifier or self._filename

    @property
    def path(self) -> str | None:
        if self.file is None:
            return None
        return self.file.path

    @property
    def size(self) -> int:
        if self.file is None:
            return 0
        return self.file.size

    def read(self) -> bytes | None:
        if self.file is None:
            return None
        return self.file.read()

    def url(self) -> str | None:
        if self.file is None:
            return None
        if self.cached:
            return FileStorage(self).url(self.file)
        return self.storage_engine().url(self.file)

    @property
    def cache_name(self) -> str | None:
        """Token that lets a cached file be found again, e.g. after a form round trip."""
        if not self.cached or not self.original_filename:
            return None
        return f"{self.cache_id}/{self.original_filename}"

    def storage_engine(self):
        if self._storage_engine is None:
            name = self.storage or get_settings().STORAGE
            self._storage_engine = STORAGE_ENGINES[name](self)
        return self._storage_engine

    def store_dir(self) -> str:
        """Directory (relative to the storage root) where files are stored."""
        parts = []
        if self.model is not None:
            parts.append(getattr(self.model, "__tablename__", None) or _underscore(type(self.model).__name__))
        if self.mounted_as:
            parts.append(self.mounted_as)
        model_id = getattr(self.model, "id", None)
        if model_id is not None:
            parts.append(str(model_id))
        return "/".join(parts)

    def store_path(self, for_file: str | None = None) -> str:
        return str(PurePosixPath(self.store_dir(), for_file or self.filename))

    def cache_dir(self) -> Path:
        return Path(get_settings().CACHE_DIR) / self.cache_id

    def process(self, file: SanitizedFile) -> None:
        """
        Hook run on every freshly cached file. Raise ProcessingError to
        reject the file after it was accepted by the integrity checks.
        """

    def check_integrity(self, new_file: SanitizedFile) -> None:
        if new_file.is_empty:
            raise IntegrityError("You are not allowed to upload an empty file")

        if self.extension_allowlist is not None:
            allowed = [extension.lower() for extension in self.extension_allowlist]
            if new_file.extension not in allowed:
                raise IntegrityError(
                    f"You are not allowed to upload {new_file.extension!r} files, "
                    f"allowed types: {', '.join(allowed)}"
                )

        if self.size_range is not None:
            minimum, maximum = self.size_range
            size = new_file.size
            if size < minimum:
                raise IntegrityError(f"File size should be greater than {minimum} bytes")
            if size > maximum:
                raise IntegrityError(f"File size should be less than {maximum} bytes")

    def cache(self, new_file) -> None:
        """
        Copy new_file into the cache and run `process` on it.

        Raises:
            IntegrityError: the content is empty or not allowed
            ProcessingError: `process` rejected the file
        """
        new_file = SanitizedFile(new_file)
        self.check_integrity(new_file)

        # Raw bytes and anonymous streams carry no name
        filename = new_file.filename or "unnamed"
        cache_id = generate_cache_id()
        cached_file = new_file.copy_to(Path(get_settings().CACHE_DIR) / cache_id / filename)
        try:
            self.process(cached_file)
        except ProcessingError:
            shutil.rmtree(Path(get_settings().CACHE_DIR) / cache_id, ignore_errors=True)
            raise

        self.cache_id = cache_id
        self.original_filename = filename
        self._filename = filename
        self._identifier = None
        self.file = cached_file
        logger.debug("Cached %s as %s", new_file.original_filename, self.cache_name)

    def retrieve_from_cache(self, cache_name: str) -> None:
        """
        Raises:
            InvalidParameter: the cache name is malformed or its file is gone
        """
        cache_id, _, original_filename = (cache_name or "").partition("/")
        if not CACHE_ID_REGEXP.fullmatch(cache_id):
            raise InvalidParameter(f"Invalid cache id: {cache_id!r}")
        if not CACHE_FILENAME_REGEXP.fullmatch(original_filename):
            raise InvalidParameter(f"Invalid original filename: {original_filename!r}")

        cached_file = SanitizedFile(Path(get_settings().CACHE_DIR) / cache_id / original_filename)
        if not cached_file.exists:
            raise InvalidParameter(f"Cached file not found: {cache_name!r}")

        self.cache_id = cache_id
        self.original_filename = original_filename
        self._filename = original_filename
        self._identifier = None
        self.file = cached_file

    def store(self, new_file=None) -> None:
        """Persist the cached file; a no-op when nothing is cached."""
        if new_file is not None:
            self.cache(new_file)
        if self.file is None or not self.cached:
            return

        path = self.store_path()
        cache_dir = self.cache_dir()
        self.file = self.storage_engine().store(self.file, path)
        if self.move_to_store:
            shutil.rmtree(cache_dir, ignore_errors=True)
        self.cache_id = None
        logger.info("Stored %s", path)

    def retrieve_from_store(self, identifier: str) -> None:
        self._identifier = identifier
        self._filename = identifier
        self.file = self.storage_engine().retrieve(self.store_path(identifier))

    def deduplicate(self, taken_names) -> None:
        """
        Rename a cached file whose name is already taken by another file of
        the same mount: a.txt becomes a(2).txt, then a(3).txt, ...
        """
        if not self.cached or self._filename not in taken_names:
            return
        name = PurePosixPath(self._filename)
        counter = 2
        while f"{name.stem}({counter}){name.suffix}" in taken_names:
            counter += 1
        self._filename = f"{name.stem}({counter}){name.suffix}"
        logger.debug("Renamed %s to %s", name, self._filename)

    def remove(self) -> None:
        """Delete the underlying content. Errors are never swallowed."""
        if self.file is not None:
            logger.info("Removing %s", self.file.path)
            self.file.delete()
        if self.cached:
            shutil.rmtree(self.cache_dir(), ignore_errors=True)
        self.file = None
        self.cache_id = None
        self._identifier = None

    def download(self, url: str) -> None:
        """
        Fetch url and cache its content.

        Raises:
            DownloadError: the URL is invalid or could not be fetched
        """
        parsed = urlparse(url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise DownloadError(f"Invalid download URL: {url!r}")

        try:
            response = httpx.get(url, timeout=get_settings().DOWNLOAD_TIMEOUT, follow_redirects=True)
            response.raise_for_status()
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise DownloadError(f"Could not download file from {url}: {exc}") from exc

        filename = None
        match = CONTENT_DISPOSITION_REGEXP.search(response.headers.get("content-disposition", ""))
        if match:
            filename = match.group(1)
        if not filename:
            filename = unquote(PurePosixPath(parsed.path).name) or "download"

        content_type = response.headers.get("content-type")
        if content_type:
            content_type = content_type.split(";")[0].strip()

        self.cache(RemoteFile(response.content, filename, content_type))

"""
Mounter - the per (record, attribute) file lifecycle controller.

A Mounter owns the uploaders currently associated with one mounted
attribute of one record. Assigning files caches them (cheap, reversible),
`store` persists them and writes their identifiers to the record's
serialization column, `remove` deletes them and clears the column.
Removal can also be requested up front (`remove_flag`) and is then carried
out by the next `store`.

The record is referenced, never owned: a Mounter lives inside the record's
instance dict and is rebuilt from the serialized identifiers whenever the
record is reloaded.
"""

import json
import logging

from uploader.errors import DownloadError, IntegrityError, InvalidParameter, ProcessingError

logger = logging.getLogger(__name__)

# Checkbox values that mean "do not remove"
FALSE_VALUES = ("0", "false", "False", "FALSE", "off", "")


class Mounter:
    """
    Lifecycle manager for a single mounted attribute of a single record.

    Args:
        record: the owning record; must provide read_uploader, write_uploader,
            is_frozen and the class-level uploader registry
        column: the mounted attribute name
    """

    def __init__(self, record, column: str):
        self.record = record
        self.column = column
        self.remove_flag = None
        self._uploaders = None
        self._remote_urls: list[str] = []
        self._errors: dict[str, Exception | None] = {
            "integrity": None,
            "processing": None,
            "download": None,
        }
        self._options: dict = {}

    def __repr__(self) -> str:
        return f"<Mounter {type(self.record).__name__}.{self.column}>"

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def uploader_class(self):
        return type(self.record).mounted_uploaders[self.column]

    @property
    def multiple(self) -> bool:
        return bool(self.option("multiple"))

    @property
    def serialization_column(self) -> str:
        return self.option("mount_on") or self.column

    def option(self, name: str):
        if name not in self._options:
            self._options[name] = type(self.record).uploader_option(self.column, name)
        return self._options[name]

    def blank_uploader(self):
        return self.uploader_class(self.record, self.column)

    # ------------------------------------------------------------------
    # Errors retained for inspection
    # ------------------------------------------------------------------

    @property
    def integrity_error(self) -> IntegrityError | None:
        return self._errors["integrity"]

    @property
    def processing_error(self) -> ProcessingError | None:
        return self._errors["processing"]

    @property
    def download_error(self) -> DownloadError | None:
        return self._errors["download"]

    def _handle_error(self, kind: str, option: str, error: Exception) -> None:
        """Retain error, then re-raise it unless the mount ignores this kind."""
        self._errors[kind] = error
        if not self.option(option):
            raise error
        logger.warning("Ignoring %s error on %r: %s", kind, self, error)

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def identifiers(self) -> list[str]:
        """Identifiers of the uploaders currently held, in order."""
        return [uploader.identifier for uploader in self.uploaders if uploader.identifier]

    def read_identifiers(self) -> list[str]:
        """Identifiers as currently serialized on the record."""
        value = self.record.read_uploader(self.serialization_column)
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        return [identifier for identifier in value if identifier]

    def _serialized_value(self, identifiers: list[str]):
        if not identifiers:
            return None
        if self.multiple:
            return list(identifiers)
        return identifiers[0]

    def write_identifier(self) -> None:
        """Write the held identifiers (or None when removal is requested) to the record."""
        if self.record.is_frozen():
            return
        if self.remove_requested:
            self.record.write_uploader(self.serialization_column, None)
        else:
            self.record.write_uploader(self.serialization_column, self._serialized_value(self.identifiers()))

    # ------------------------------------------------------------------
    # Uploaders
    # ------------------------------------------------------------------

    @property
    def uploaders(self) -> list:
        if self._uploaders is None:
            uploaders = []
            for identifier in self.read_identifiers():
                uploader = self.blank_uploader()
                uploader.retrieve_from_store(identifier)
                uploaders.append(uploader)
            self._uploaders = uploaders
        return self._uploaders

    @property
    def present(self) -> bool:
        return any(uploader.present for uploader in self.uploaders)

    @property
    def blank(self) -> bool:
        return not self.present

    def urls(self) -> list[str | None]:
        return [uploader.url() for uploader in self.uploaders]

    def has_pending_changes(self) -> bool:
        """True when the next save has files to store, remove or re-serialize."""
        if self._uploaders is None and not self.remove_requested:
            return False
        if self.remove_requested:
            return bool(self.read_identifiers()) or bool(self._uploaders)
        if any(uploader.cached for uploader in self.uploaders):
            return True
        return self.identifiers() != self.read_identifiers()

    def _replace_uploaders(self, uploaders: list, remote_urls: list[str] | None = None) -> None:
        self._uploaders = uploaders
        self._remote_urls = remote_urls or []
        self.remove_flag = False

    def _discard(self, uploaders: list) -> None:
        for uploader in uploaders:
            if uploader.present:
                uploader.remove()

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def _as_list(self, value) -> list:
        if isinstance(value, (list, tuple)):
            return list(value)
        return [value]

    def cache(self, new_files) -> None:
        """
        Cache new_files in fresh uploaders and make them the pending set.

        None, "" or an empty sequence clears the pending set. Failed payloads
        are dropped when their error kind is ignored; otherwise the error is
        raised and the current uploaders are left untouched.
        """
        if new_files is None or new_files == "" or new_files == [] or new_files == ():
            self._replace_uploaders([])
            self._errors["integrity"] = None
            self._errors["processing"] = None
            return

        uploaders = []
        failures = {"integrity": None, "processing": None}
        try:
            for new_file in self._as_list(new_files):
                uploader = self.blank_uploader()
                try:
                    uploader.cache(new_file)
                except IntegrityError as error:
                    failures["integrity"] = error
                    self._handle_error("integrity", "ignore_integrity_errors", error)
                    continue
                except ProcessingError as error:
                    failures["processing"] = error
                    self._handle_error("processing", "ignore_processing_errors", error)
                    continue
                uploaders.append(uploader)
        except (IntegrityError, ProcessingError):
            # Files cached before the failure are dropped with it
            self._discard(uploaders)
            raise

        self._errors.update(failures)
        if uploaders or not any(failures.values()):
            self._replace_uploaders(uploaders)

    @property
    def cache_names(self) -> str | None:
        """Opaque token for the cached-but-not-stored files, None when nothing is cached."""
        names = [uploader.cache_name for uploader in self.uploaders if uploader.cache_name]
        if not names:
            return None
        if self.multiple:
            return json.dumps(names)
        return names[0]

    @cache_names.setter
    def cache_names(self, token) -> None:
        if not token:
            return
        # A file assigned in this request wins over the one from the form
        if any(uploader.cached for uploader in self.uploaders):
            return

        try:
            if isinstance(token, str) and self.multiple:
                names = json.loads(token)
            else:
                names = token
            uploaders = []
            for name in self._as_list(names):
                if not isinstance(name, str):
                    raise InvalidParameter(f"Invalid cache name: {name!r}")
                uploader = self.blank_uploader()
                uploader.retrieve_from_cache(name)
                uploaders.append(uploader)
        except (InvalidParameter, ValueError) as error:
            logger.warning("Ignoring cache token for %r: %s", self, error)
            return

        self._replace_uploaders(uploaders)

    # ------------------------------------------------------------------
    # Remote URLs
    # ------------------------------------------------------------------

    @property
    def remote_urls(self) -> list[str]:
        return list(self._remote_urls)

    @remote_urls.setter
    def remote_urls(self, urls) -> None:
        if not urls:
            return
        urls = [url for url in self._as_list(urls) if url]
        if not urls:
            return

        uploaders = []
        downloaded = []
        failures = {"integrity": None, "processing": None, "download": None}
        try:
            for url in urls:
                uploader = self.blank_uploader()
                try:
                    uploader.download(url)
                except DownloadError as error:
                    failures["download"] = error
                    self._handle_error("download", "ignore_download_errors", error)
                    continue
                except IntegrityError as error:
                    failures["integrity"] = error
                    self._handle_error("integrity", "ignore_integrity_errors", error)
                    continue
                except ProcessingError as error:
                    failures["processing"] = error
                    self._handle_error("processing", "ignore_processing_errors", error)
                    continue
                uploaders.append(uploader)
                downloaded.append(url)
        except (DownloadError, IntegrityError, ProcessingError):
            self._discard(uploaders)
            raise

        self._errors.update(failures)
        if uploaders or not any(failures.values()):
            self._replace_uploaders(uploaders, downloaded)

    # ------------------------------------------------------------------
    # Store / remove
    # ------------------------------------------------------------------

    @property
    def remove_requested(self) -> bool:
        """Interpretation of remove_flag, which may hold a raw checkbox value."""
        flag = self.remove_flag
        if flag is None or flag is False:
            return False
        if isinstance(flag, str):
            return flag.strip() not in FALSE_VALUES
        return bool(flag)

    def store(self) -> None:
        """
        Persist every held uploader and write the identifiers to the record,
        or remove everything when removal was requested.

        Cached files whose name is already used by another file of this
        mount are renamed, so each file gets its own path. When a store
        error is raised, the files stored by this call and the remaining
        cached files are removed, and the uploaders are rebuilt from the
        record's column on next access.
        """
        if self.remove_requested:
            self.remove()
            return

        taken = {uploader.filename for uploader in self.uploaders if uploader.present and not uploader.cached}
        for uploader in self.uploaders:
            if uploader.cached:
                uploader.deduplicate(taken)
                taken.add(uploader.filename)

        stored = []
        newly_stored = []
        failed = None
        for uploader in self.uploaders:
            if uploader.blank:
                continue
            was_cached = uploader.cached
            try:
                uploader.store()
            except ProcessingError as error:
                failed = error
                if not self.option("ignore_processing_errors"):
                    self._undo_store(newly_stored)
                self._handle_error("processing", "ignore_processing_errors", error)
                uploader.remove()
                continue
            stored.append(uploader)
            if was_cached:
                newly_stored.append(uploader)

        if failed is None:
            self._errors["processing"] = None
        else:
            # Only the files that made it keep their remote URL
            remote_urls = [
                url for uploader, url in zip(self.uploaders, self._remote_urls) if uploader in stored
            ]
            self._uploaders = stored
            self._remote_urls = remote_urls

        self.remove_flag = False
        self.write_identifier()

    def _undo_store(self, newly_stored: list) -> None:
        # Paths still referenced by the column belong to the previous files
        referenced = set(self.read_identifiers())
        for uploader in self.uploaders:
            if uploader in newly_stored:
                if uploader.identifier not in referenced:
                    uploader.remove()
            elif uploader.cached:
                uploader.remove()
        self._uploaders = None
        self._remote_urls = []

    def remove(self) -> None:
        """Delete every held file, then clear the serialization column."""
        for uploader in self.uploaders:
            if uploader.present:
                uploader.remove()
        self._uploaders = []
        self._remote_urls = []
        self.remove_flag = False
        self.write_identifier()

"""
Mountable - lets a record class map attributes to uploaders.

    class Song(Mountable):
        ...

    Song.mount_uploaders("lyrics", LyricsUploader)
    Song.mount_uploader("cover", mount_on="cover_identifier")

Mounting registers the uploader class and its options on the class and
installs thin accessors for the attribute. For a multiple mount named
`lyrics` (single mounts use the singular url/identifier names):

    lyrics                        uploaders held; assigning caches new files
    lyrics_present                whether anything is held
    lyrics_urls()                 url of every held file
    lyrics_cache                  token for cached files; assigning restores them
    remote_lyrics_urls            urls fetched into the cache; assigning downloads them
    remove_lyrics                 removal checkbox, applied by the next store
    remove_lyrics_requested       whether the checkbox means "remove"
    remove_lyrics_files()         delete the files now
    store_lyrics()                store cached files (or remove them, see above)
    lyrics_integrity_error        last integrity error, if ignored
    lyrics_processing_error       last processing error, if ignored
    lyrics_download_error         last download error, if ignored
    write_lyrics_identifier()     write identifiers to the serialization column
    lyrics_identifiers            identifiers as serialized on the record

plus the update-time reconciliation hooks store_previous_model_for_lyrics(),
find_previous_model_for_lyrics(), remove_previously_stored_lyrics() and
mark_remove_lyrics_false().

Persistence is up to the record: override read_uploader / write_uploader
(and reload_from_store for reconciliation). MountableModel in mount.orm does
this for SQLModel tables.
"""

import logging
from typing import ClassVar

from mount.mounter import Mounter
from uploader.base import Uploader

logger = logging.getLogger(__name__)


class MountError(Exception):
    """A mount was declared or used incorrectly."""


def _named(name: str, function):
    function.__name__ = name
    function.__qualname__ = name
    return function


def _build_accessors(column: str, multiple: bool) -> dict:
    """The accessors installed on a record class for one mounted column."""
    suffix = "s" if multiple else ""

    def get_files(self):
        mounter = self._mounter(column)
        if multiple:
            return mounter.uploaders
        return mounter.uploaders[0] if mounter.uploaders else mounter.blank_uploader()

    def set_files(self, new_files):
        self._mounter(column).cache(new_files)
        self.mount_assigned(column)

    def urls(self):
        found = self._mounter(column).urls()
        if multiple:
            return found
        return found[0] if found else None

    def get_cache(self):
        return self._mounter(column).cache_names

    def set_cache(self, token):
        self._mounter(column).cache_names = token
        self.mount_assigned(column)

    def get_remote_urls(self):
        found = self._mounter(column).remote_urls
        if multiple:
            return found
        return found[0] if found else None

    def set_remote_urls(self, urls):
        self._mounter(column).remote_urls = urls
        self.mount_assigned(column)

    def get_remove(self):
        return self._mounter(column).remove_flag

    def set_remove(self, value):
        self._mounter(column).remove_flag = value
        self.mount_assigned(column)

    def get_identifiers(self):
        identifiers = self._mounter(column).read_identifiers()
        if multiple:
            return identifiers
        return identifiers[0] if identifiers else None

    return {
        column: property(get_files, set_files),
        f"{column}_present": property(lambda self: self._mounter(column).present),
        f"{column}_url{suffix}": _named(f"{column}_url{suffix}", urls),
        f"{column}_cache": property(get_cache, set_cache),
        f"remote_{column}_url{suffix}": property(get_remote_urls, set_remote_urls),
        f"remove_{column}": property(get_remove, set_remove),
        f"remove_{column}_requested": property(lambda self: self._mounter(column).remove_requested),
        f"remove_{column}_files": _named(
            f"remove_{column}_files", lambda self: self._mounter(column).remove()
        ),
        f"store_{column}": _named(f"store_{column}", lambda self: self._mounter(column).store()),
        f"{column}_integrity_error": property(lambda self: self._mounter(column).integrity_error),
        f"{column}_processing_error": property(lambda self: self._mounter(column).processing_error),
        f"{column}_download_error": property(lambda self: self._mounter(column).download_error),
        f"write_{column}_identifier": _named(
            f"write_{column}_identifier", lambda self: self._mounter(column).write_identifier()
        ),
        f"{column}_identifier{suffix}": property(get_identifiers),
        f"store_previous_model_for_{column}": _named(
            f"store_previous_model_for_{column}", lambda self: self.store_previous_model_for(column)
        ),
        f"find_previous_model_for_{column}": _named(
            f"find_previous_model_for_{column}", lambda self: self.find_previous_model_for(column)
        ),
        f"remove_previously_stored_{column}": _named(
            f"remove_previously_stored_{column}", lambda self: self.remove_previously_stored(column)
        ),
        f"mark_remove_{column}_false": _named(
            f"mark_remove_{column}_false", lambda self: self.mark_remove_false(column)
        ),
    }


class Mountable:
    """Mixin for record classes that mount uploaders on their attributes."""

    mounted_uploaders: ClassVar[dict] = {}
    mounted_uploader_options: ClassVar[dict] = {}

    # ------------------------------------------------------------------
    # Class side
    # ------------------------------------------------------------------

    @classmethod
    def mount_uploaders(cls, column: str, uploader=None, **options):
        """
        Mount a list of files on column.

        Args:
            column: attribute to mount on
            uploader: Uploader subclass; None builds an anonymous one
            **options: mount_on (serialization column), ignore_integrity_errors,
                ignore_processing_errors, ignore_download_errors,
                remove_previously_stored_files_after_update

        Returns:
            The mounted uploader class
        """
        return cls._mount(column, uploader, multiple=True, options=options)

    @classmethod
    def mount_uploader(cls, column: str, uploader=None, **options):
        """Mount a single file on column. Same options as mount_uploaders."""
        return cls._mount(column, uploader, multiple=False, options=options)

    @classmethod
    def _mount(cls, column: str, uploader, multiple: bool, options: dict):
        options = dict(options, multiple=multiple)
        cls._check_mount(column, options)
        uploader = cls._build_uploader(column, uploader)

        # Subclasses get their own registries, seeded from the parent's
        if "mounted_uploaders" not in cls.__dict__:
            cls.mounted_uploaders = dict(cls.mounted_uploaders)
        if "mounted_uploader_options" not in cls.__dict__:
            cls.mounted_uploader_options = dict(cls.mounted_uploader_options)
        cls.mounted_uploaders[column] = uploader
        cls.mounted_uploader_options[column] = options

        for name, accessor in _build_accessors(column, multiple).items():
            setattr(cls, name, accessor)

        logger.debug("Mounted %s on %s.%s", uploader.__name__, cls.__name__, column)
        return uploader

    @classmethod
    def _check_mount(cls, column: str, options: dict) -> None:
        if not column.isidentifier():
            raise MountError(f"Cannot mount an uploader on {column!r}: not an identifier")

    @classmethod
    def _build_uploader(cls, column: str, uploader):
        if uploader is not None:
            return uploader
        name = f"{cls.__name__}{column.title().replace('_', '')}Uploader"
        return type(name, (Uploader,), {"__module__": cls.__module__})

    @classmethod
    def uploader_option(cls, column: str, option: str):
        """
        Mount option for column, falling back to the uploader class attribute.
        """
        options = cls.mounted_uploader_options.get(column, {})
        if option in options:
            return options[option]
        return getattr(cls.mounted_uploaders[column], option, None)

    # ------------------------------------------------------------------
    # Record interface, overridden by persistent classes
    # ------------------------------------------------------------------

    def read_uploader(self, column: str):
        """Return the serialized identifier(s) stored in column."""
        return None

    def write_uploader(self, column: str, identifier) -> None:
        """Write identifier(s) (or None) to column."""

    def mount_assigned(self, column: str) -> None:
        """Called after files, a cache token, remote urls or the remove flag are assigned to column."""

    def is_frozen(self) -> bool:
        return False

    def reload_from_store(self):
        """A fresh copy of this record read from its backing store, or None."""
        return None

    # ------------------------------------------------------------------
    # Mounters
    # ------------------------------------------------------------------

    def _mounter(self, column: str) -> Mounter:
        if column not in type(self).mounted_uploaders:
            raise MountError(f"No uploader is mounted on {type(self).__name__}.{column}")
        # Frozen records cannot hold a memo
        if self.is_frozen():
            return Mounter(self, column)
        mounters = self.__dict__.setdefault("_mounters", {})
        if column not in mounters:
            mounters[column] = Mounter(self, column)
        return mounters[column]

    def _active_mounters(self) -> dict:
        """Mounters already built for this instance, by column."""
        return dict(self.__dict__.get("_mounters", {}))

    # ------------------------------------------------------------------
    # Previous-value reconciliation
    # ------------------------------------------------------------------

    def _previous_models(self) -> dict:
        return self.__dict__.setdefault("_previous_model_snapshots", {})

    def serialized_value_changed(self, column: str) -> bool:
        """Whether saving would change what column holds."""
        mounter = self._mounter(column)
        if mounter.remove_requested:
            return bool(mounter.read_identifiers())
        return mounter.identifiers() != mounter.read_identifiers()

    def store_previous_model_for(self, column: str) -> None:
        """
        Snapshot the persisted record before column changes, so the files it
        references can be removed once the change is committed.
        """
        mounter = self._mounter(column)
        if not mounter.option("remove_previously_stored_files_after_update"):
            return
        if not self.serialized_value_changed(column):
            return
        previous_models = self._previous_models()
        if previous_models.get(column) is None:
            previous_models[column] = self.find_previous_model_for(column)

    def find_previous_model_for(self, column: str):
        return self.reload_from_store()

    def remove_previously_stored(self, column: str) -> None:
        """
        Remove the snapshot's files that the record no longer references.
        Nothing is removed when both reference the same paths.
        """
        previous_model = self._previous_models().pop(column, None)
        if previous_model is None:
            return

        current_paths = {uploader.path for uploader in self._mounter(column).uploaders if uploader.path}
        previous_uploaders = [uploader for uploader in previous_model._mounter(column).uploaders if uploader.present]
        previous_paths = {uploader.path for uploader in previous_uploaders}
        if previous_paths == current_paths:
            return

        for uploader in previous_uploaders:
            if uploader.path not in current_paths:
                logger.info("Removing previously stored %s", uploader.path)
                uploader.remove()

    def mark_remove_false(self, column: str) -> None:
        self._mounter(column).remove_flag = False

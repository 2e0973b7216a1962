"""
SQLModel integration for mounted uploaders.

MountableModel implements the record interface on top of SQLModel table
classes, and the session listeners below drive the file lifecycle from
flushes and commits:

- before_flush: snapshot the persisted row of records whose mounted
  columns change, then store (or remove) their files and write the
  identifiers; collect the files of deleted records
- after_commit: remove files that updates superseded and files of
  deleted records
- after_rollback: drop everything collected since the last commit and
  forget the mounters of records whose files were saved
"""

import logging

from sqlalchemy import and_, event, inspect as sa_inspect, select
from sqlalchemy.orm import Session, object_session
from sqlalchemy.orm.attributes import flag_dirty

from mount.extension import Mountable, MountError

logger = logging.getLogger(__name__)

UPDATED_RECORDS_KEY = "filemount_updated_records"
REMOVED_UPLOADERS_KEY = "filemount_removed_uploaders"


class MountableModel(Mountable):
    """
    Mixin for SQLModel table classes. Mounted attributes must serialize to
    a separate field, given with mount_on:

        class Document(MountableModel, SQLModel, table=True):
            id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
            cover_file: str | None = None

        Document.mount_uploader("cover", CoverUploader, mount_on="cover_file")
    """

    @classmethod
    def _check_mount(cls, column: str, options: dict) -> None:
        super()._check_mount(column, options)
        fields = getattr(cls, "model_fields", {})
        serialization_column = options.get("mount_on") or column
        if column in fields:
            raise MountError(
                f"{cls.__name__}.{column} is a model field; mount the uploader on another "
                f"name and pass mount_on={column!r}"
            )
        if serialization_column not in fields:
            raise MountError(f"{cls.__name__} has no field {serialization_column!r} to serialize {column} to")

    def read_uploader(self, column: str):
        return getattr(self, column)

    def write_uploader(self, column: str, identifier) -> None:
        setattr(self, column, identifier)

    def mount_assigned(self, column: str) -> None:
        # File-only changes must still reach before_flush
        flag_dirty(self)

    def is_frozen(self) -> bool:
        # Rows deleted by a flush are read-only from here on
        return sa_inspect(self).was_deleted

    def reload_from_store(self):
        """Read this row again on the session's connection, bypassing the identity map."""
        state = sa_inspect(self)
        session = object_session(self)
        if session is None or state.identity is None:
            return None

        mapper = state.mapper
        table = mapper.local_table
        criteria = [column == value for column, value in zip(mapper.primary_key, state.identity)]
        row = session.connection().execute(select(table).where(and_(*criteria))).mappings().first()
        if row is None:
            return None

        values = {}
        for prop in mapper.column_attrs:
            column = prop.columns[0]
            if column.table is table:
                values[prop.key] = row[column.name]
        return type(self)(**values)

    def serialized_value_changed(self, column: str) -> bool:
        serialization_column = self._mounter(column).serialization_column
        history = sa_inspect(self).attrs[serialization_column].history
        return history.has_changes() or super().serialized_value_changed(column)

    def has_pending_mounted_files(self) -> bool:
        return any(mounter.has_pending_changes() for mounter in self._active_mounters().values())

    def save_mounted_files(self) -> bool:
        """
        Store every mounted column with pending changes. Returns True when
        anything was stored or removed.
        """
        persistent = sa_inspect(self).persistent
        saved = False
        for column, mounter in self._active_mounters().items():
            if not mounter.has_pending_changes():
                continue
            if persistent:
                self.store_previous_model_for(column)
            mounter.store()
            saved = True
        return saved

    def mounted_uploaders_to_remove(self) -> list:
        """Every present uploader of every mounted column."""
        uploaders = []
        for column in type(self).mounted_uploaders:
            uploaders.extend(uploader for uploader in self._mounter(column).uploaders if uploader.present)
        return uploaders


@event.listens_for(Session, "before_flush")
def _store_mounted_files(session, flush_context, instances):
    updated = session.info.setdefault(UPDATED_RECORDS_KEY, [])
    removed = session.info.setdefault(REMOVED_UPLOADERS_KEY, [])

    for record in session.deleted:
        if isinstance(record, MountableModel):
            removed.extend(record.mounted_uploaders_to_remove())

    for record in list(session.new) + list(session.identity_map.values()):
        if not isinstance(record, MountableModel) or record in session.deleted:
            continue
        if not record.has_pending_mounted_files():
            continue
        # Registered before storing, so a failed store is discarded on rollback
        if not any(record is seen for seen in updated):
            updated.append(record)
        record.save_mounted_files()


@event.listens_for(Session, "after_commit")
def _remove_superseded_files(session):
    updated = session.info.pop(UPDATED_RECORDS_KEY, [])
    removed = session.info.pop(REMOVED_UPLOADERS_KEY, [])

    for record in updated:
        for column in record._active_mounters():
            record.remove_previously_stored(column)
            record.mark_remove_false(column)

    for uploader in removed:
        uploader.remove()
    if removed:
        logger.info("Removed %d file(s) of deleted records", len(removed))


@event.listens_for(Session, "after_rollback")
def _discard_pending_files(session):
    for record in session.info.pop(UPDATED_RECORDS_KEY, []):
        record._previous_models().clear()
        # Rebuilt from the rolled back column on next access
        record.__dict__.pop("_mounters", None)
    session.info.pop(REMOVED_UPLOADERS_KEY, None)

"""
Normalized view over anything an uploader can be handed:
raw bytes, a path on disk, an open binary file, a FastAPI UploadFile
or a RemoteFile produced by a download.
"""

import mimetypes
import re
import shutil
from pathlib import Path


class RemoteFile:
    """In-memory payload fetched from a remote URL."""

    def __init__(self, content: bytes, filename: str, content_type: str | None = None):
        self.content = content
        self.filename = filename
        self.content_type = content_type

    def read(self) -> bytes:
        return self.content


class SanitizedFile:
    """
    Wraps an uploaded payload and exposes a safe filename, its size,
    its content and a way to copy it somewhere on disk.
    """

    SANITIZE_REGEXP = re.compile(r"[^a-zA-Z0-9\.\-\+_]")

    def __init__(self, file, filename: str | None = None, content_type: str | None = None):
        if isinstance(file, SanitizedFile):
            filename = filename or file.original_filename
            content_type = content_type or file._content_type
            file = file.file
        self.file = file
        self._original_filename = filename
        self._content_type = content_type
        self._content: bytes | None = None

    @property
    def is_path(self) -> bool:
        return isinstance(self.file, (str, Path))

    @property
    def path(self) -> str | None:
        """Filesystem path of the payload, when it lives on disk."""
        if self.is_path:
            return str(self.file)
        return None

    @property
    def exists(self) -> bool:
        if self.is_path:
            return Path(self.file).exists()
        return self.file is not None

    @property
    def original_filename(self) -> str | None:
        if self._original_filename:
            return self._original_filename
        if self.is_path:
            return Path(self.file).name
        for attr in ("filename", "name"):
            value = getattr(self.file, attr, None)
            if isinstance(value, str) and value:
                return Path(value.replace("\\", "/")).name
        return None

    @property
    def filename(self) -> str | None:
        """The original filename with every unsafe character replaced by '_'."""
        name = self.original_filename
        if name is None:
            return None
        name = Path(name.replace("\\", "/")).name
        name = self.SANITIZE_REGEXP.sub("_", name)
        if re.fullmatch(r"\.+", name):
            name = f"_{name}"
        return name or "unnamed"

    @property
    def extension(self) -> str:
        name = self.filename or ""
        return Path(name).suffix.lstrip(".").lower()

    @property
    def content_type(self) -> str | None:
        if self._content_type:
            return self._content_type
        value = getattr(self.file, "content_type", None)
        if isinstance(value, str) and value:
            return value
        if self.filename:
            return mimetypes.guess_type(self.filename)[0]
        return None

    @property
    def size(self) -> int:
        if self.is_path:
            path = Path(self.file)
            return path.stat().st_size if path.exists() else 0
        return len(self.read())

    @property
    def is_empty(self) -> bool:
        return self.file is None or self.size == 0

    def read(self) -> bytes:
        """Return the whole content; file objects are rewound before reading."""
        if self._content is not None:
            return self._content
        if self.file is None:
            return b""
        if self.is_path:
            return Path(self.file).read_bytes()
        if isinstance(self.file, (bytes, bytearray)):
            self._content = bytes(self.file)
            return self._content

        # UploadFile keeps the real file object on `.file`; its own read() is async
        source = self.file
        inner = getattr(source, "file", None)
        if inner is not None and hasattr(inner, "read"):
            source = inner
        if hasattr(source, "seek"):
            source.seek(0)
        data = source.read()
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._content = data
        return data

    def copy_to(self, new_path) -> "SanitizedFile":
        new_path = Path(new_path)
        new_path.parent.mkdir(parents=True, exist_ok=True)
        if self.is_path:
            shutil.copyfile(self.file, new_path)
        else:
            new_path.write_bytes(self.read())
        return SanitizedFile(new_path, content_type=self.content_type)

    def move_to(self, new_path) -> "SanitizedFile":
        if not self.is_path:
            return self.copy_to(new_path)
        new_path = Path(new_path)
        new_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(self.file), new_path)
        return SanitizedFile(new_path, content_type=self.content_type)

    def delete(self) -> None:
        if self.is_path:
            Path(self.file).unlink(missing_ok=True)

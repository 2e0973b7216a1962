import io
import uuid

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlmodel import Session, create_engine, SQLModel
from sqlmodel.pool import StaticPool
from core.config import get_settings
from core.deps import get_db
from main import app
from mount import Mountable

# Rows "persisted" by MemoryRecord.save, by (class, id)
STORED_ROWS = {}


class MemoryRecord(Mountable):
    """
    Record kept in memory: columns live in a dict and save() persists a
    copy of them, running the same store and cleanup steps an ORM would
    """

    def __init__(self, id=None, **columns):
        self.id = id or uuid.uuid4().hex
        self.columns = dict(columns)
        self.frozen = False

    def read_uploader(self, column):
        return self.columns.get(column)

    def write_uploader(self, column, identifier):
        self.columns[column] = identifier

    def is_frozen(self):
        return self.frozen

    def reload_from_store(self):
        row = STORED_ROWS.get((type(self), self.id))
        if row is None:
            return None
        return type(self)(self.id, **row)

    def save(self):
        columns = list(type(self).mounted_uploaders)
        for column in columns:
            self.store_previous_model_for(column)
            self._mounter(column).store()
        STORED_ROWS[(type(self), self.id)] = dict(self.columns)
        for column in columns:
            self.remove_previously_stored(column)
            self.mark_remove_false(column)


class MockS3Client:
    """Mock S3 client for testing"""

    def __init__(self):
        self.objects = {}  # {(bucket, key): {"Body": bytes, "ContentType": str}}
        self.deleted = []  # (bucket, key) of every delete_object call

    def put_object(self, Bucket: str, Key: str, Body: bytes, ContentType: str = None):
        """Mock put_object"""
        self.objects[(Bucket, Key)] = {"Body": Body, "ContentType": ContentType}
        return {"ETag": '"mock"'}

    def get_object(self, Bucket: str, Key: str):
        """Mock get_object"""
        if (Bucket, Key) not in self.objects:
            raise ClientError(
                {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
                "GetObject",
            )
        stored = self.objects[(Bucket, Key)]
        return {"Body": io.BytesIO(stored["Body"]), "ContentType": stored["ContentType"]}

    def head_object(self, Bucket: str, Key: str):
        """Mock head_object"""
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, "HeadObject")
        stored = self.objects[(Bucket, Key)]
        return {"ContentLength": len(stored["Body"]), "ContentType": stored["ContentType"]}

    def delete_object(self, Bucket: str, Key: str):
        """Mock delete_object"""
        self.deleted.append((Bucket, Key))
        self.objects.pop((Bucket, Key), None)
        return {}


@pytest.fixture(name="storage_dirs", autouse=True)
def storage_dirs_fixture(tmp_path, monkeypatch):
    """
    Point local storage and the cache at a temporary directory
    """
    uploads_root = tmp_path / "uploads"
    cache_dir = tmp_path / "cache"
    monkeypatch.setenv("UPLOADS_ROOT", str(uploads_root))
    monkeypatch.setenv("CACHE_DIR", str(cache_dir))
    monkeypatch.setenv("UPLOADS_BASE_URL", "/uploads")
    monkeypatch.setenv("STORAGE", "file")
    get_settings.cache_clear()
    yield {"uploads_root": uploads_root, "cache_dir": cache_dir}
    get_settings.cache_clear()


@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        yield session
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="mock_s3_client")
def mock_s3_client_fixture():
    """Provide a mock S3 client for testing"""
    return MockS3Client()


@pytest.fixture(name="client")
def client_fixture(session: Session):
    def get_db_override():
        return session

    app.dependency_overrides[get_db] = get_db_override

    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

"""
Tests for configuration module
"""
import json
from unittest.mock import MagicMock, patch

from botocore.exceptions import NoCredentialsError

from core.config import Settings, get_secret, get_settings


def test_storage_defaults(monkeypatch):
    """Test the storage settings read from the environment"""
    monkeypatch.setenv("STORAGE", "s3")
    monkeypatch.setenv("UPLOADS_BUCKET_URI", "s3://bucket/prefix/")
    monkeypatch.setenv("DOWNLOAD_TIMEOUT", "5")
    settings = Settings()
    assert settings.STORAGE == "s3"
    assert settings.UPLOADS_BUCKET_URI == "s3://bucket/prefix/"
    assert settings.DOWNLOAD_TIMEOUT == 5.0


def test_get_settings_is_cached():
    """Test that get_settings returns the same instance until cleared"""
    first = get_settings()
    assert get_settings() is first
    get_settings.cache_clear()
    assert get_settings() is not first


def test_database_uri_defaults_to_sqlite(monkeypatch):
    """Without env or secrets the database is in-memory SQLite"""
    monkeypatch.delenv("SQLALCHEMY_DATABASE_URI", raising=False)
    monkeypatch.delenv("ENV_SECRETS", raising=False)
    assert Settings().SQLALCHEMY_DATABASE_URI == "sqlite://"


def test_database_uri_from_env(monkeypatch):
    monkeypatch.setenv("SQLALCHEMY_DATABASE_URI", "postgresql://user:pw@db/filemount")
    assert Settings().SQLALCHEMY_DATABASE_URI == "postgresql://user:pw@db/filemount"


def test_secret_fallback(monkeypatch):
    """Values missing from env are read from the ENV_SECRETS secret"""
    monkeypatch.delenv("AWS_SECRET_ACCESS_KEY", raising=False)
    monkeypatch.setenv("ENV_SECRETS", "filemount/secrets")
    with patch("core.config.get_secret", return_value={"AWS_SECRET_ACCESS_KEY": "shh"}) as mock_get:
        settings = Settings()
        assert settings.AWS_SECRET_ACCESS_KEY == "shh"
        # Cached after the first lookup
        assert settings.AWS_SECRET_ACCESS_KEY == "shh"
    mock_get.assert_called_once()


def test_secret_unavailable_falls_back_to_default(monkeypatch):
    monkeypatch.delenv("SQLALCHEMY_DATABASE_URI", raising=False)
    monkeypatch.setenv("ENV_SECRETS", "filemount/secrets")
    with patch("core.config.get_secret", side_effect=NoCredentialsError()):
        assert Settings().SQLALCHEMY_DATABASE_URI == "sqlite://"


def test_get_secret():
    """Test get_secret parses the secret string"""
    client = MagicMock()
    client.get_secret_value.return_value = {
        "SecretString": json.dumps({"key": "value"}) + "\n"
    }
    with patch("core.config.boto3.session.Session") as mock_session:
        mock_session.return_value.client.return_value = client
        assert get_secret("name", "us-east-1") == {"key": "value"}
    client.get_secret_value.assert_called_once_with(SecretId="name")

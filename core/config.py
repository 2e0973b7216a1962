"""
Application Configuration
Storage locations, upload defaults and secrets live here
"""

from functools import lru_cache
import os
import json
from pathlib import Path
from typing import Literal
from pydantic import computed_field, PrivateAttr
from pydantic_settings import BaseSettings, SettingsConfigDict
import boto3
from botocore.exceptions import ClientError, NoCredentialsError
from dotenv import load_dotenv

# Load .env file into os.environ so os.getenv() works correctly
# This must happen before Settings class is instantiated
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_secret(secret_name: str, region_name: str) -> dict:
    """
    Retrieve secrets from AWS Secrets Manager

    Args:
        secret_name: Name of the secret in Secrets Manager
        region_name: AWS region where secret is stored

    Returns:
        dict: Parsed secret value

    Raises:
        ClientError: If secret cannot be retrieved
    """
    session = boto3.session.Session()
    client = session.client(
        service_name='secretsmanager',
        region_name=region_name
    )
    get_secret_value_response = client.get_secret_value(
        SecretId=secret_name
    )
    secret = get_secret_value_response['SecretString']
    return json.loads(
        secret.replace('\n', '')
    )


class Settings(BaseSettings):
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    client_origin: str | None = os.getenv("client_origin")

    # Storage backend used by uploaders unless an uploader overrides it
    STORAGE: Literal["file", "s3"] = os.getenv("STORAGE", "file")

    # Local storage: stored files live under UPLOADS_ROOT, cached files under CACHE_DIR
    UPLOADS_ROOT: str = os.getenv("UPLOADS_ROOT", "uploads")
    CACHE_DIR: str = os.getenv("CACHE_DIR", "uploads/tmp")
    UPLOADS_BASE_URL: str = os.getenv("UPLOADS_BASE_URL", "/uploads")

    # S3 storage
    UPLOADS_BUCKET_URI: str = os.getenv("UPLOADS_BUCKET_URI", "s3://my-uploads-bucket/")
    AWS_ACCESS_KEY_ID: str | None = os.getenv("AWS_ACCESS_KEY_ID")
    AWS_REGION: str | None = os.getenv("AWS_REGION")

    # Remote file downloads (remote_<column>_urls)
    DOWNLOAD_TIMEOUT: float = float(os.getenv("DOWNLOAD_TIMEOUT", "30"))

    # Cache for AWS Secrets Manager to avoid multiple API calls
    _secret_cache: dict | None = PrivateAttr(default=None)

    def _get_config_value(
        self,
        env_var_name: str,
        secret_key_name: str | None = None,
        default: str | None = None
    ) -> str | None:
        """
        Get a value from the environment, then AWS Secrets Manager, then the default.

        Secrets Manager is only consulted when ENV_SECRETS names a secret.
        """
        env_value = os.getenv(env_var_name)
        if env_value:
            return env_value

        if secret_key_name is None:
            secret_key_name = env_var_name

        env_secret = os.getenv('ENV_SECRETS')
        if env_secret:
            try:
                if self._secret_cache is None:
                    self._secret_cache = get_secret(env_secret, os.getenv("AWS_REGION", 'us-east-1'))
            except (ClientError, NoCredentialsError):
                self._secret_cache = {}
            secret_value = self._secret_cache.get(secret_key_name)
            if secret_value is not None:
                return secret_value

        return default

    @computed_field
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Build database URI from env or secrets, defaults to sqlite://"""
        return self._get_config_value("SQLALCHEMY_DATABASE_URI", default="sqlite://")

    @computed_field
    @property
    def AWS_SECRET_ACCESS_KEY(self) -> str | None:
        """Get the AWS secret key from env or secrets"""
        return self._get_config_value("AWS_SECRET_ACCESS_KEY")

    # Read environment variables from .env file, if it exists
    # extra='ignore' prevents validation errors from extra env vars
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get settings instance, cached for performance
    """
    return Settings()

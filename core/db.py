"""
Database configuration
"""
from sqlmodel import SQLModel, create_engine
from sqlmodel.pool import StaticPool
from core.config import get_settings

# Create engine lazily to allow test configuration to be applied
_engine = None


def get_engine():
    """
    Get or create the database engine.
    This lazy initialization allows test settings to be applied properly.
    """
    global _engine
    if _engine is None:
        uri = str(get_settings().SQLALCHEMY_DATABASE_URI)
        kwargs = {}
        if uri.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            # In-memory SQLite must share one connection across request threads
            if uri in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
        _engine = create_engine(uri, echo=False, **kwargs)
    return _engine


def reset_engine():
    """
    Reset the engine to None.
    This is useful for tests that need to switch between different settings.
    """
    global _engine
    _engine = None


def init_db():
    """Create every table registered on SQLModel.metadata"""
    SQLModel.metadata.create_all(get_engine())

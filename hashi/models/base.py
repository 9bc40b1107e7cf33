"""Database base configuration"""
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from hashi.config import settings

engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if "sqlite" in settings.database_url else {},
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

Base = declarative_base()


class RecordMixin:
    """Conversion between mirror rows and plain record dicts.

    Records are the currency of the sync code: adapters produce them, the
    mirror stores them and the reconciler compares them. Keys are column
    names; unknown keys are ignored on the way in.
    """

    @classmethod
    def column_names(cls) -> list:
        return [c.name for c in cls.__table__.columns]

    @classmethod
    def from_record(cls, record: Dict[str, Any]):
        names = set(cls.column_names())
        return cls(**{k: v for k, v in record.items() if k in names})

    def to_record(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.column_names()}


def init_db(bind=None):
    """Initialize database"""
    # Ensure all models are imported so SQLAlchemy metadata is populated.
    import hashi.models  # noqa: F401  (import for side-effects)

    Base.metadata.create_all(bind=bind or engine)

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from sqlalchemy.pool import StaticPool
from fastapi import Request

Base = declarative_base()


class Database:
    """Owns the engine and session factory for one process.

    Opened at application startup and disposed at shutdown; services receive
    sessions, never the handle itself.
    """

    def __init__(self, url: str, **engine_kwargs):
        self.url = url
        self.engine_kwargs = engine_kwargs
        self.engine = None
        self.SessionLocal = None

    def open(self) -> "Database":
        kwargs = dict(self.engine_kwargs)
        if self.url.startswith("sqlite"):
            kwargs.setdefault("connect_args", {"check_same_thread": False})
            if ":memory:" in self.url or self.url == "sqlite://":
                kwargs.setdefault("poolclass", StaticPool)

        self.engine = create_engine(self.url, future=True, **kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )
        return self

    def create_all(self):
        # register every table on Base.metadata
        from interview_engine.models import assignment, interview, question, submission  # noqa: F401

        Base.metadata.create_all(bind=self.engine)

    def session(self) -> Session:
        if self.SessionLocal is None:
            raise RuntimeError("Database is not open")
        return self.SessionLocal()

    def close(self):
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self.SessionLocal = None


def get_db(request: Request):
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()

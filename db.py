from sqlalchemy import create_engine, event
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker

from config import DATABASE_URL, DB_ECHO


def build_engine(url: str = DATABASE_URL, echo: bool = DB_ECHO):
    """Create an engine for ``url``.

    SQLite connections are switched to manual transaction control and every
    transaction starts with BEGIN IMMEDIATE, so concurrent writers queue on the
    database lock instead of reading stale rows.
    """
    if url.startswith("sqlite"):
        engine = create_engine(
            url,
            echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine
    return create_engine(url, echo=echo, pool_pre_ping=True)


# Create SQLAlchemy engine
engine = build_engine()

# Create SessionLocal class
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)

# Create Base class for models
Base = declarative_base()


# Dependency to get database session
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# Import all models here to ensure they are registered with SQLAlchemy's Base
from models.fees import fee_structure_models, student_fee_models, payment_models, audit_models  # noqa: E402,F401


# Function to create all tables
def create_tables(bind=None):
    Base.metadata.create_all(bind=bind or engine)

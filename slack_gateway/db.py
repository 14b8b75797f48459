from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker


# Base class for all models
Base = declarative_base()


def create_session_factory(database_url: str) -> sessionmaker:
    """Create the engine, make sure tables exist and return a session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(bind=engine)

    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=engine,
    )

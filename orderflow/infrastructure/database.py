from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from orderflow.core.config import settings

# Connections are opened lazily, so importing this module never touches the DB.
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True)

# expire_on_commit=False: repositories hand ORM objects back after the session closes.
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()

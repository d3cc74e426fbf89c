from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

import os

# --- Database URL from environment ---
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/queueflow")

# --- SQLAlchemy setup ---
engine = create_engine(DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

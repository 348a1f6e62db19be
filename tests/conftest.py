# tests/conftest.py
import os

# in-memory store for every test; must be set before dealflow.db is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest

from dealflow.db import Base, engine, SessionLocal
import dealflow.models  # noqa: F401 ensure models are imported so tables are known
from dealflow.schemas import CatalogEntry


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def catalog():
    return [
        # no price for grade D on purpose
        CatalogEntry(brand="Apple", model="iPhone 15 Pro Max", storage="256GB",
                     prices={"A": 850, "B+": 800, "B": 720, "C": 600, "DOA": 150}),
        CatalogEntry(brand="Apple", model="iPhone 15 Pro Max", storage="512GB",
                     prices={"A": 950, "B+": 900, "B": 820, "C": 700, "D": 400, "DOA": 180}),
        CatalogEntry(brand="Apple", model="iPhone 14", storage="128GB",
                     prices={"A": 500, "B+": 460, "B": 420, "C": 350, "D": 250, "DOA": 80}),
        CatalogEntry(brand="Samsung", model="Galaxy S23 Ultra", storage=None,
                     prices={"A": 700, "B+": 650, "B": 600, "C": 480, "D": 300, "DOA": 90}),
    ]

import os

# La app lee DATABASE_URL al importarse: SQLite en memoria para las pruebas
os.environ["DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient

from catalog.database import Base, SessionLocal, engine
from catalog.main import app
from catalog import models


@pytest.fixture(autouse=True)
def _schema():
    # Esquema limpio en cada prueba
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_author(db):
    counter = {"n": 0}

    def _make(name="Autor Test", email=None, **kwargs):
        counter["n"] += 1
        author = models.Author(
            name=name,
            email=email or f"autor{counter['n']}@example.com",
            **kwargs,
        )
        db.add(author)
        db.commit()
        db.refresh(author)
        return author

    return _make


@pytest.fixture
def make_book(db):
    def _make(author, title="Libro", **kwargs):
        book = models.Book(title=title, author_id=author.id, **kwargs)
        db.add(book)
        db.commit()
        db.refresh(book)
        return book

    return _make

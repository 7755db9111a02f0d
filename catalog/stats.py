"""
Estadísticas de un autor a partir de su colección de libros.

Cada dato se obtiene con una consulta independiente sobre la sesión recibida;
si alguna falla, la excepción se propaga y no se devuelven estadísticas
parciales.
"""

import logging
import math

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from . import models, schemas

logger = logging.getLogger(__name__)


class AuthorNotFound(Exception):
    def __init__(self, author_id: int):
        super().__init__(f"Author {author_id} not found")
        self.author_id = author_id


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _extreme_book(db: Session, author_id: int, column, descending: bool):
    """Libro con el valor mínimo/máximo de ``column`` (ignora nulos, desempata por id)."""
    stmt = (
        select(models.Book)
        .where(models.Book.author_id == author_id, column.is_not(None))
        .order_by(column.desc() if descending else column.asc(), models.Book.id.asc())
        .limit(1)
    )
    return db.execute(stmt).scalars().first()


def count_books(db: Session, author_id: int) -> int:
    stmt = select(func.count(models.Book.id)).where(models.Book.author_id == author_id)
    return db.execute(stmt).scalar_one()


def average_pages(db: Session, author_id: int) -> int:
    stmt = select(func.avg(models.Book.pages)).where(
        models.Book.author_id == author_id,
        models.Book.pages.is_not(None),
    )
    avg = db.execute(stmt).scalar()
    return _round_half_up(float(avg)) if avg is not None else 0


def distinct_genres(db: Session, author_id: int) -> list:
    stmt = (
        select(models.Book.genre)
        .where(models.Book.author_id == author_id, models.Book.genre.is_not(None))
        .distinct()
        .order_by(models.Book.genre)
    )
    return list(db.execute(stmt).scalars().all())


def author_statistics(db: Session, author_id: int) -> schemas.AuthorStats:
    author = db.get(models.Author, author_id)
    if author is None:
        raise AuthorNotFound(author_id)

    first = _extreme_book(db, author_id, models.Book.published_year, descending=False)
    latest = _extreme_book(db, author_id, models.Book.published_year, descending=True)
    longest = _extreme_book(db, author_id, models.Book.pages, descending=True)
    shortest = _extreme_book(db, author_id, models.Book.pages, descending=False)

    stats = schemas.AuthorStats(
        author_id=author.id,
        author_name=author.name,
        total_books=count_books(db, author_id),
        first_book=schemas.BookYear(title=first.title, year=first.published_year) if first else None,
        latest_book=schemas.BookYear(title=latest.title, year=latest.published_year) if latest else None,
        average_pages=average_pages(db, author_id),
        genres=distinct_genres(db, author_id),
        longest_book=schemas.BookPages(title=longest.title, pages=longest.pages) if longest else None,
        shortest_book=schemas.BookPages(title=shortest.title, pages=shortest.pages) if shortest else None,
    )
    logger.debug("stats author_id=%s total_books=%s", author_id, stats.total_books)
    return stats

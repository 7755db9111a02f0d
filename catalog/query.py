"""
Construcción de consultas de búsqueda de libros y cálculo de paginación.

Los parámetros llegan como texto sin validar desde la URL. Este módulo es el
único punto donde se convierten: nunca falla, y ante valores ausentes o mal
formados usa los valores por defecto. Todo lo que viene después trabaja con
un ``BookQuery`` ya tipado.
"""

import math
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import and_, true

from . import models, schemas

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 50

SORTABLE_FIELDS = {
    "title": models.Book.title,
    "publishedYear": models.Book.published_year,
    "createdAt": models.Book.created_at,
}
DEFAULT_SORT_BY = "createdAt"
SORT_ORDERS = ("asc", "desc")
DEFAULT_ORDER = "desc"

LEADING_INT_RE = re.compile(r"\s*[+-]?\d+")


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def parse_positive_int(raw: Optional[str], default: int) -> int:
    """
    Lee el entero inicial de ``raw`` ("2.5" -> 2, "12abc" -> 12).

    Sin dígitos iniciales o con un valor < 1 devuelve ``default``.
    """
    if raw is None:
        return default
    match = LEADING_INT_RE.match(str(raw))
    if not match:
        return default
    value = int(match.group(0))
    return value if value >= 1 else default


@dataclass(frozen=True)
class BookQuery:
    search: Optional[str] = None
    genre: Optional[str] = None
    author_name: Optional[str] = None
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_PAGE_SIZE
    sort_by: str = DEFAULT_SORT_BY
    order: str = DEFAULT_ORDER

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    @property
    def filters(self):
        """Conjunción de los filtros presentes (requiere JOIN con authors)."""
        clauses = []
        if self.search:
            clauses.append(models.Book.title.icontains(self.search, autoescape=True))
        if self.genre:
            clauses.append(models.Book.genre == self.genre)
        if self.author_name:
            clauses.append(models.Author.name.icontains(self.author_name, autoescape=True))
        if not clauses:
            return true()
        return and_(*clauses)

    @property
    def order_by(self):
        column = SORTABLE_FIELDS[self.sort_by]
        if self.order == "asc":
            return (column.asc().nulls_last(), models.Book.id.asc())
        return (column.desc().nulls_last(), models.Book.id.desc())


def build_book_query(
    search: Optional[str] = None,
    genre: Optional[str] = None,
    author_name: Optional[str] = None,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sort_by: Optional[str] = None,
    order: Optional[str] = None,
) -> BookQuery:
    """
    Normaliza los parámetros de ``GET /books/search``.

    - page: entero >= 1, por defecto 1.
    - limit: entero >= 1, por defecto 10, máximo 50.
    - sort_by: title | publishedYear | createdAt (por defecto createdAt).
    - order: asc | desc (por defecto desc).
    """
    return BookQuery(
        search=_clean_text(search),
        genre=_clean_text(genre),
        author_name=_clean_text(author_name),
        page=parse_positive_int(page, DEFAULT_PAGE),
        limit=min(parse_positive_int(limit, DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE),
        sort_by=sort_by if sort_by in SORTABLE_FIELDS else DEFAULT_SORT_BY,
        order=order if order in SORT_ORDERS else DEFAULT_ORDER,
    )


def paginate(total: int, page: int, limit: int) -> schemas.Pagination:
    total_pages = max(1, math.ceil(total / limit))
    return schemas.Pagination(
        page=page,
        limit=limit,
        total=total,
        total_pages=total_pages,
        has_next=page < total_pages,
        has_prev=page > 1,
    )

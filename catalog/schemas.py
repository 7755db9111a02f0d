from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base común: JSON en camelCase, atributos en snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------
# Autores
# ---------------------------------------------------------------------

class AuthorBase(CamelModel):
    name: str = Field(..., min_length=1)
    email: str
    bio: Optional[str] = None
    nationality: Optional[str] = None
    birth_year: Optional[int] = None


class AuthorCreate(AuthorBase):
    pass


class AuthorUpdate(CamelModel):
    # Actualización parcial: solo cambian los campos enviados
    name: Optional[str] = None
    email: Optional[str] = None
    bio: Optional[str] = None
    nationality: Optional[str] = None
    birth_year: Optional[int] = None


class Author(AuthorBase):
    id: int
    book_count: int = 0


class AuthorRef(CamelModel):
    id: int
    name: str


class AuthorForBook(AuthorRef):
    email: str


# ---------------------------------------------------------------------
# Libros
# ---------------------------------------------------------------------

class BookBase(CamelModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    isbn: Optional[str] = None
    published_year: Optional[int] = None
    genre: Optional[str] = None
    pages: Optional[int] = None


class BookCreate(BookBase):
    author_id: int


class BookUpdate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    isbn: Optional[str] = None
    published_year: Optional[int] = None
    genre: Optional[str] = None
    pages: Optional[int] = None
    author_id: Optional[int] = None


class Book(BookBase):
    id: int
    author_id: int
    created_at: datetime


class BookWithAuthor(Book):
    author: AuthorForBook


class AuthorDetail(Author):
    books: List[Book] = []


class AuthorBooks(CamelModel):
    author: AuthorRef
    total_books: int
    books: List[Book]


# ---------------------------------------------------------------------
# Búsqueda y paginación
# ---------------------------------------------------------------------

class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool


class BookSearchResult(CamelModel):
    data: List[BookWithAuthor]
    pagination: Pagination


# ---------------------------------------------------------------------
# Estadísticas
# ---------------------------------------------------------------------

class BookYear(CamelModel):
    title: str
    year: int


class BookPages(CamelModel):
    title: str
    pages: int


class AuthorStats(CamelModel):
    author_id: int
    author_name: str
    total_books: int
    first_book: Optional[BookYear] = None
    latest_book: Optional[BookYear] = None
    average_pages: int = 0
    genres: List[str] = []
    longest_book: Optional[BookPages] = None
    shortest_book: Optional[BookPages] = None


class Message(CamelModel):
    message: str

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, func, select
from sqlalchemy.orm import column_property, relationship

from .database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Author(Base):
    __tablename__ = "authors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True)
    bio = Column(Text)
    nationality = Column(String)
    birth_year = Column(Integer)

    # Relación uno-a-muchos: el libro guarda la referencia al autor
    books = relationship(
        "Book",
        back_populates="author",
        order_by=lambda: (Book.published_year.desc().nulls_last(), Book.id),
        passive_deletes="all",
    )


class Book(Base):
    __tablename__ = "books"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    isbn = Column(String)
    published_year = Column(Integer)
    genre = Column(String, index=True)
    pages = Column(Integer)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    # RESTRICT: un autor con libros no se puede borrar
    author_id = Column(
        Integer,
        ForeignKey("authors.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    author = relationship("Author", back_populates="books")


# Número de libros calculado en la misma consulta del autor
Author.book_count = column_property(
    select(func.count(Book.id))
    .where(Book.author_id == Author.id)
    .correlate_except(Book)
    .scalar_subquery()
)

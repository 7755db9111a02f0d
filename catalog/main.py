"""
catalog/main.py

Servicio de catálogo de biblioteca (FastAPI): autores y libros.

- Un autor puede tener varios libros; cada libro pertenece a un único autor.
- Búsqueda de libros con filtros, ordenamiento y paginación.
- Estadísticas por autor (primer/último libro, promedio de páginas, géneros...).

Endpoints clave:
- GET    /books/search          -> búsqueda paginada
- GET    /authors/{id}/stats    -> estadísticas del autor
- GET    /authors/{id}/books    -> libros de un autor
- DELETE /authors/{id}          -> bloqueado si el autor tiene libros
- GET    /health, /metrics      -> observabilidad básica
"""

import logging
import re
import time
from contextlib import asynccontextmanager
from typing import List, Optional
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from sqlalchemy import func, select, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, contains_eager, joinedload, selectinload
from starlette.exceptions import HTTPException as StarletteHTTPException

from catalog import models, schemas
from catalog.config import settings
from catalog.database import Base, engine, get_db
from catalog.query import build_book_query, paginate
from catalog.stats import AuthorNotFound, author_statistics

logger = logging.getLogger("catalog")
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s"
)

EMAIL_RE = re.compile(r"[^\s]+@[^\s]+\.[^\s]+")

AUTHOR_NOT_FOUND = "Autor no encontrado"
BOOK_NOT_FOUND = "Libro no encontrado"
DUPLICATE_EMAIL = "El email ya está registrado"


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Tablas verificadas/creadas correctamente.")
    except SQLAlchemyError as e:
        # Otra réplica puede estar creando las tablas al mismo tiempo
        logger.warning("Aviso en DB: no se pudieron crear las tablas: %s", e)
    yield


app = FastAPI(
    title=settings.service_name,
    description="Servicio de gestión de autores y libros con búsqueda y estadísticas",
    version="1.0.0",
    lifespan=lifespan,
)

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"]
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path"]
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id", str(uuid4()))
    start = time.time()

    try:
        response = await call_next(request)
    except Exception as exc:
        logger.exception(
            "request_id=%s method=%s path=%s error=%s",
            request_id, request.method, request.url.path, str(exc)
        )
        raise

    duration_ms = int((time.time() - start) * 1000)
    logger.info(
        "request_id=%s method=%s path=%s status=%s duration_ms=%s",
        request_id, request.method, request.url.path, response.status_code, duration_ms
    )
    # Plantilla de la ruta (/authors/{author_id}) para no disparar la cardinalidad
    route = request.scope.get("route")
    path = getattr(route, "path", "unmatched")
    REQUEST_COUNT.labels(request.method, path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, path).observe((time.time() - start))

    response.headers["X-Request-Id"] = request_id
    return response


# ---------------------------------------------------------------------
# Errores: siempre {"error": "..."} sin detalles internos
# ---------------------------------------------------------------------

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    fields = [".".join(str(p) for p in err["loc"] if p != "body") for err in exc.errors()]
    return JSONResponse(
        status_code=400,
        content={"error": "Datos de entrada inválidos", "fields": fields},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(
        "Error inesperado method=%s path=%s", request.method, request.url.path
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Error interno del servidor"},
    )


@app.get("/metrics", include_in_schema=False)
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def _get_author_or_404(db: Session, author_id: int) -> models.Author:
    author = db.get(models.Author, author_id)
    if not author:
        raise HTTPException(status_code=404, detail=AUTHOR_NOT_FOUND)
    return author


def _get_book_or_404(db: Session, book_id: int) -> models.Book:
    stmt = (
        select(models.Book)
        .options(joinedload(models.Book.author))
        .where(models.Book.id == book_id)
    )
    book = db.execute(stmt).scalars().first()
    if not book:
        raise HTTPException(status_code=404, detail=BOOK_NOT_FOUND)
    return book


def _require_text(values: dict, fields) -> None:
    """400 si alguno de ``fields`` está presente pero vacío o solo con espacios."""
    for field in fields:
        if field in values and (values[field] is None or not str(values[field]).strip()):
            raise HTTPException(status_code=400, detail=f"El campo '{field}' es obligatorio")


def _validate_email(email: Optional[str]) -> None:
    if email is not None and not EMAIL_RE.fullmatch(email):
        raise HTTPException(status_code=400, detail="Email inválido")


def _server_error(db: Session, message: str) -> HTTPException:
    """Registra el error de BD en curso y devuelve un 500 genérico."""
    db.rollback()
    logger.exception(message)
    return HTTPException(status_code=500, detail=message)


# ---------------------------------------------------------------------
# Autores
# ---------------------------------------------------------------------

@app.get("/authors/", summary="List authors", response_model=List[schemas.Author])
def list_authors(db: Session = Depends(get_db)):
    """Lista todos los autores con su número de libros."""
    try:
        return db.execute(select(models.Author).order_by(models.Author.name)).scalars().all()
    except SQLAlchemyError:
        raise _server_error(db, "Error al obtener autores")


@app.post("/authors/", status_code=201, response_model=schemas.Author)
def create_author(author: schemas.AuthorCreate, db: Session = Depends(get_db)):
    """
    Crea un autor.

    Body esperado:
    {
      "name": "Nombre",
      "email": "autor@ejemplo.com",
      "bio": "opcional", "nationality": "opcional", "birthYear": 1900
    }
    """
    _require_text(author.model_dump(), ("name",))
    _validate_email(author.email)
    try:
        db_author = models.Author(**author.model_dump())
        db.add(db_author)
        db.commit()
        db.refresh(db_author)
        return db_author
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=DUPLICATE_EMAIL)
    except SQLAlchemyError:
        raise _server_error(db, "Error al crear autor")


@app.get("/authors/{author_id}", response_model=schemas.AuthorDetail)
def read_author(author_id: int, db: Session = Depends(get_db)):
    """
    Obtiene un autor por id, con sus libros (más recientes primero)
    y el número total de libros.
    """
    try:
        stmt = (
            select(models.Author)
            .options(selectinload(models.Author.books))
            .where(models.Author.id == author_id)
        )
        author = db.execute(stmt).scalars().first()
    except SQLAlchemyError:
        raise _server_error(db, "Error al obtener autor")
    if not author:
        raise HTTPException(status_code=404, detail=AUTHOR_NOT_FOUND)
    return author


@app.put("/authors/{author_id}", response_model=schemas.AuthorDetail)
def update_author(author_id: int, payload: schemas.AuthorUpdate, db: Session = Depends(get_db)):
    """
    Actualiza un autor. Solo se modifican los campos presentes en el body.

    Se valida el email antes de tocar la BD; si es inválido no hay cambios.
    """
    changes = payload.model_dump(exclude_unset=True)
    _require_text(changes, ("name", "email"))
    _validate_email(changes.get("email"))

    try:
        author = _get_author_or_404(db, author_id)
        for field, value in changes.items():
            setattr(author, field, value)
        db.commit()
        db.refresh(author)
        return author
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail=DUPLICATE_EMAIL)
    except SQLAlchemyError:
        raise _server_error(db, "Error al actualizar autor")


@app.delete("/authors/{author_id}", response_model=schemas.Message)
def delete_author(author_id: int, db: Session = Depends(get_db)):
    """
    Elimina un autor.

    Un autor con libros no se elimina (409): primero hay que borrar
    o reasignar sus libros.
    """
    try:
        author = _get_author_or_404(db, author_id)
        if author.book_count:
            raise HTTPException(
                status_code=409,
                detail="No se puede eliminar un autor con libros asociados",
            )
        db.delete(author)
        db.commit()
    except IntegrityError:
        # Alguien añadió un libro entre la comprobación y el borrado
        db.rollback()
        raise HTTPException(
            status_code=409,
            detail="No se puede eliminar un autor con libros asociados",
        )
    except SQLAlchemyError:
        raise _server_error(db, "Error al eliminar autor")
    return {"message": "Autor eliminado correctamente"}


@app.get("/authors/{author_id}/stats", response_model=schemas.AuthorStats)
def read_author_stats(author_id: int, db: Session = Depends(get_db)):
    """Estadísticas completas del autor."""
    try:
        return author_statistics(db, author_id)
    except AuthorNotFound:
        raise HTTPException(status_code=404, detail=AUTHOR_NOT_FOUND)
    except SQLAlchemyError:
        raise _server_error(db, "Error al obtener estadísticas del autor")


@app.get("/authors/{author_id}/books", response_model=schemas.AuthorBooks)
def read_author_books(author_id: int, db: Session = Depends(get_db)):
    """
    Devuelve los libros de un autor, ordenados por año de publicación
    (más recientes primero).
    """
    try:
        author = _get_author_or_404(db, author_id)
        stmt = (
            select(models.Book)
            .where(models.Book.author_id == author_id)
            .order_by(models.Book.published_year.desc().nulls_last(), models.Book.id)
        )
        books = db.execute(stmt).scalars().all()
    except SQLAlchemyError:
        raise _server_error(db, "Error al obtener libros del autor")

    return {
        "author": {"id": author.id, "name": author.name},
        "total_books": len(books),
        "books": books,
    }


# ---------------------------------------------------------------------
# Libros
# ---------------------------------------------------------------------

@app.get("/books/", response_model=List[schemas.BookWithAuthor])
def list_books(db: Session = Depends(get_db)):
    """Lista todos los libros (más recientes primero) con su autor."""
    try:
        stmt = (
            select(models.Book)
            .options(joinedload(models.Book.author))
            .order_by(models.Book.created_at.desc(), models.Book.id.desc())
        )
        return db.execute(stmt).scalars().all()
    except SQLAlchemyError:
        raise _server_error(db, "Error al obtener libros")


# Debe declararse antes de /books/{book_id}
@app.get("/books/search", response_model=schemas.BookSearchResult)
def search_books(
    search: Optional[str] = None,
    genre: Optional[str] = None,
    author_name: Optional[str] = Query(None, alias="authorName"),
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    order: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """
    Búsqueda avanzada de libros.

    Los filtros se combinan (AND). page/limit/sortBy/order mal formados
    no generan error: se usan los valores por defecto.
    """
    query = build_book_query(
        search=search,
        genre=genre,
        author_name=author_name,
        page=page,
        limit=limit,
        sort_by=sort_by,
        order=order,
    )
    try:
        total = db.execute(
            select(func.count(models.Book.id))
            .select_from(models.Book)
            .join(models.Book.author)
            .where(query.filters)
        ).scalar_one()

        stmt = (
            select(models.Book)
            .join(models.Book.author)
            .options(contains_eager(models.Book.author))
            .where(query.filters)
            .order_by(*query.order_by)
            .offset(query.offset)
            .limit(query.limit)
        )
        data = db.execute(stmt).scalars().all()
    except SQLAlchemyError:
        raise _server_error(db, "Error al buscar libros")

    return {"data": data, "pagination": paginate(total, query.page, query.limit)}


@app.get("/books/{book_id}", response_model=schemas.BookWithAuthor)
def read_book(book_id: int, db: Session = Depends(get_db)):
    """Devuelve el detalle de un libro por ID, incluido su autor."""
    try:
        return _get_book_or_404(db, book_id)
    except SQLAlchemyError:
        raise _server_error(db, "Error al obtener libro")


@app.post("/books/", status_code=201, response_model=schemas.BookWithAuthor)
def create_book(book: schemas.BookCreate, db: Session = Depends(get_db)):
    """
    Crea un libro.

    El autor (authorId) debe existir; si no, 404.
    """
    _require_text(book.model_dump(), ("title",))
    try:
        _get_author_or_404(db, book.author_id)
        db_book = models.Book(**book.model_dump())
        db.add(db_book)
        db.commit()
        return _get_book_or_404(db, db_book.id)
    except SQLAlchemyError:
        raise _server_error(db, "Error al crear libro")


@app.put("/books/{book_id}", response_model=schemas.BookWithAuthor)
def update_book(book_id: int, payload: schemas.BookUpdate, db: Session = Depends(get_db)):
    """Actualiza un libro. Solo se modifican los campos presentes en el body."""
    changes = payload.model_dump(exclude_unset=True)
    _require_text(changes, ("title", "author_id"))
    if changes.get("description", "") is None:
        changes["description"] = ""

    try:
        book = _get_book_or_404(db, book_id)
        if "author_id" in changes:
            _get_author_or_404(db, changes["author_id"])
        for field, value in changes.items():
            setattr(book, field, value)
        db.commit()
        return _get_book_or_404(db, book_id)
    except SQLAlchemyError:
        raise _server_error(db, "Error al actualizar libro")


@app.delete("/books/{book_id}", response_model=schemas.Message)
def delete_book(book_id: int, db: Session = Depends(get_db)):
    """Elimina un libro."""
    try:
        book = _get_book_or_404(db, book_id)
        db.delete(book)
        db.commit()
    except SQLAlchemyError:
        raise _server_error(db, "Error al eliminar libro")
    return {"message": "Libro eliminado correctamente"}


# ---------------------------------------------------------------------
# Utilidad / Observabilidad básica
# ---------------------------------------------------------------------

@app.get("/")
def read_root():
    return {
        "service": settings.service_name,
        "status": "Online",
        "message": "Bienvenido al catálogo de autores y libros",
    }


@app.get("/health")
def health_check():
    """
    Healthcheck simple:
    - Devuelve healthy si puede abrir una conexión y ejecutar SELECT 1.
    """
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except SQLAlchemyError as e:
        logger.warning("Healthcheck fallido: %s", e)
        return {"status": "unhealthy", "error": "database unavailable"}

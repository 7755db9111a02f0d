import pytest

from catalog import models


def test_get_authors_returns_list(client):
    r = client.get("/authors/")
    assert r.status_code == 200
    assert isinstance(r.json(), list)


def test_post_author_creates_author(client):
    payload = {"name": "Ada Lovelace", "email": "ada@example.com", "bio": "Pionera", "birthYear": 1815}
    r = client.post("/authors/", json=payload)

    assert r.status_code == 201
    body = r.json()
    assert body["name"] == "Ada Lovelace"
    assert body["bio"] == "Pionera"
    assert body["birthYear"] == 1815
    assert body["bookCount"] == 0
    assert "id" in body


def test_post_author_invalid_email_returns_400(client):
    r = client.post("/authors/", json={"name": "X", "email": "sin-arroba"})
    assert r.status_code == 400
    assert r.json()["error"] == "Email inválido"


def test_post_author_missing_fields_returns_400(client):
    r = client.post("/authors/", json={"name": "X"})
    assert r.status_code == 400
    assert "email" in r.json()["fields"]


def test_post_author_duplicate_email_returns_409(client, make_author):
    make_author(email="dup@example.com")
    r = client.post("/authors/", json={"name": "Otro", "email": "dup@example.com"})
    assert r.status_code == 409
    assert r.json()["error"] == "El email ya está registrado"


def test_list_authors_includes_book_count(client, make_author, make_book):
    author = make_author(name="Con Libros")
    make_book(author)
    make_book(author)

    body = client.get("/authors/").json()
    assert body[0]["bookCount"] == 2


def test_get_author_with_books_newest_first(client, make_author, make_book):
    author = make_author()
    make_book(author, title="Viejo", published_year=1990)
    make_book(author, title="Nuevo", published_year=2020)
    make_book(author, title="Sin año")

    r = client.get(f"/authors/{author.id}")
    assert r.status_code == 200
    body = r.json()
    assert body["bookCount"] == 3
    assert [b["title"] for b in body["books"]] == ["Nuevo", "Viejo", "Sin año"]


def test_get_author_404(client):
    r = client.get("/authors/999999999")
    assert r.status_code == 404
    assert r.json()["error"] == "Autor no encontrado"


def test_put_author_updates_only_given_fields(client, make_author):
    author = make_author(name="Antes", nationality="Chilena", birth_year=1950)

    r = client.put(f"/authors/{author.id}", json={"name": "Después"})
    assert r.status_code == 200
    body = r.json()
    assert body["name"] == "Después"
    assert body["nationality"] == "Chilena"
    assert body["birthYear"] == 1950
    assert body["books"] == []


def test_put_author_invalid_email_does_not_modify(client, db, make_author):
    author = make_author(email="original@example.com")

    r = client.put(f"/authors/{author.id}", json={"email": "invalido", "name": "Nuevo"})
    assert r.status_code == 400

    db.expire_all()
    stored = db.get(models.Author, author.id)
    assert stored.email == "original@example.com"
    assert stored.name == "Autor Test"


def test_put_author_duplicate_email_returns_409(client, make_author):
    make_author(email="a@example.com")
    other = make_author(email="b@example.com")

    r = client.put(f"/authors/{other.id}", json={"email": "a@example.com"})
    assert r.status_code == 409


def test_put_author_404(client):
    r = client.put("/authors/999999", json={"name": "Nadie"})
    assert r.status_code == 404


def test_put_author_null_name_returns_400(client, make_author):
    author = make_author()
    r = client.put(f"/authors/{author.id}", json={"name": None})
    assert r.status_code == 400


def test_delete_author(client, make_author):
    author = make_author()
    r = client.delete(f"/authors/{author.id}")
    assert r.status_code == 200
    assert r.json()["message"] == "Autor eliminado correctamente"
    assert client.get(f"/authors/{author.id}").status_code == 404


def test_delete_missing_author_returns_404_and_keeps_books(client, db, make_author, make_book):
    author = make_author()
    make_book(author)

    r = client.delete("/authors/999999")
    assert r.status_code == 404
    assert db.query(models.Book).count() == 1


def test_delete_author_with_books_is_blocked(client, db, make_author, make_book):
    author = make_author()
    make_book(author)

    r = client.delete(f"/authors/{author.id}")
    assert r.status_code == 409

    db.expire_all()
    assert db.get(models.Author, author.id) is not None
    assert db.query(models.Book).count() == 1


def test_author_stats_endpoint(client, make_author, make_book):
    author = make_author(name="Frank Herbert")
    make_book(author, title="Dune", pages=100, published_year=2000)
    make_book(author, title="Dune Messiah", pages=300, published_year=2010)
    make_book(author, title="Notas")

    r = client.get(f"/authors/{author.id}/stats")
    assert r.status_code == 200
    body = r.json()
    assert body["authorName"] == "Frank Herbert"
    assert body["totalBooks"] == 3
    assert body["firstBook"] == {"title": "Dune", "year": 2000}
    assert body["latestBook"] == {"title": "Dune Messiah", "year": 2010}
    assert body["averagePages"] == 200
    assert body["longestBook"] == {"title": "Dune Messiah", "pages": 300}
    assert body["shortestBook"] == {"title": "Dune", "pages": 100}


def test_author_stats_404(client):
    r = client.get("/authors/424242/stats")
    assert r.status_code == 404
    assert r.json()["error"] == "Autor no encontrado"


def test_author_books_endpoint(client, make_author, make_book):
    author = make_author(name="Ursula")
    make_book(author, title="A", published_year=1969)
    make_book(author, title="B", published_year=1974)

    r = client.get(f"/authors/{author.id}/books")
    assert r.status_code == 200
    body = r.json()
    assert body["author"] == {"id": author.id, "name": "Ursula"}
    assert body["totalBooks"] == 2
    assert [b["title"] for b in body["books"]] == ["B", "A"]


def test_author_books_404(client):
    assert client.get("/authors/31337/books").status_code == 404


@pytest.mark.parametrize("email", ["nuevo@example.com\n", "nu evo@example.com", "nuevo@exa mple.com"])
def test_email_with_whitespace_is_rejected(client, db, make_author, email):
    author = make_author(email="original@example.com")

    r = client.put(f"/authors/{author.id}", json={"email": email})
    assert r.status_code == 400
    assert r.json()["error"] == "Email inválido"

    db.expire_all()
    assert db.get(models.Author, author.id).email == "original@example.com"

    r2 = client.post("/authors/", json={"name": "Otro", "email": email})
    assert r2.status_code == 400


def test_blank_name_is_rejected(client, db, make_author):
    r = client.post("/authors/", json={"name": "   ", "email": "blanco@example.com"})
    assert r.status_code == 400
    assert db.query(models.Author).count() == 0

    author = make_author(name="Con Nombre")
    r2 = client.put(f"/authors/{author.id}", json={"name": "   "})
    assert r2.status_code == 400
    db.expire_all()
    assert db.get(models.Author, author.id).name == "Con Nombre"

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import itertools
import pytest
from fastapi.testclient import TestClient
from library_api.config import Settings
from library_api.main import create_app

_isbns = itertools.count(1)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'library.db'}",
        create_tables=True,
        connect_retry_delay=0,
        connect_max_attempts=1,
        request_timeout=10,
        conflict_retries=3,
        log_level="WARNING",
    )


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    # entering the client runs startup, which connects and creates tables
    with TestClient(app) as client:
        yield client


@pytest.fixture
def session(app, client):
    db = app.state.database.session()
    yield db
    db.close()


@pytest.fixture
def make_author(client):
    def make(name="Author", email="author@example.com", phone="+1 555-123-4567", **extra):
        r = client.post("/author/create", json={"name": name, "email": email, "phoneNumber": phone, **extra})
        assert r.status_code == 201, r.text
        return r.json()
    return make


@pytest.fixture
def make_book(client, make_author):
    def make(author_id=None, copies=1, title="Book", **extra):
        if author_id is None:
            author_id = make_author()["id"]
        body = {
            "title": title,
            "author": author_id,
            "isbn": f"978{next(_isbns):010d}",
            "availableCopies": copies,
            **extra,
        }
        r = client.post("/book/create", json=body)
        assert r.status_code == 201, r.text
        return r.json()
    return make


@pytest.fixture
def make_borrower(client):
    def make(name="Reader", active=True, tier="Standard"):
        r = client.post("/borrower/create", json={
            "name": name,
            "membershipActive": active,
            "membershipType": tier,
        })
        assert r.status_code == 201, r.text
        return r.json()
    return make
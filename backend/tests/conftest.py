"""Shared fixtures: panel DB in memory, target databases as SQLite files."""

from __future__ import annotations

import os

# Harus di-set sebelum app di-import
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool, StaticPool

from app.core.database import Base, get_db
from app.core.security import create_access_token, get_password_hash
from app.main import app
from app.modules.projects.deps import get_connection_manager
from app.modules.projects.models import Project, ProjectMember
from app.modules.users.models import User
from app.system.connection_manager import ConnectionManager
from app.system.db_types import TargetDescriptor

SHOP_SCHEMA = (
    "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT, email TEXT UNIQUE, created_at TEXT)",
    "CREATE TABLE orders (id INTEGER PRIMARY KEY, user_id INTEGER REFERENCES users(id), total REAL, note TEXT)",
    "CREATE TABLE order_items (order_id INTEGER, line INTEGER, sku TEXT, PRIMARY KEY (order_id, line))",
    "CREATE TABLE files (id INTEGER PRIMARY KEY, name TEXT, payload BLOB)",
    "CREATE VIEW active_users AS SELECT id, name FROM users WHERE id <= 5",
)

SPECIAL_NAMES = {3: "Alice Smith", 7: "alice cooper", 12: "100% Cotton"}


def seed_shop(path) -> None:
    engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
    with engine.begin() as conn:
        for statement in SHOP_SCHEMA:
            conn.execute(text(statement))
        for i in range(1, 21):
            conn.execute(
                text("INSERT INTO users (id, name, email, created_at) VALUES (:id, :name, :email, :created)"),
                {
                    "id": i,
                    "name": SPECIAL_NAMES.get(i, f"User {i:02d}"),
                    "email": f"user{i}@example.com",
                    "created": f"2024-01-{i:02d} 10:00:00",
                },
            )
        conn.execute(text(
            "INSERT INTO orders (id, user_id, total, note) VALUES "
            "(1, 3, 150.0, 'first'), (2, 7, 20.5, NULL), (3, 3, 99.0, 'gift 50_off')"
        ))
        conn.execute(text("INSERT INTO order_items VALUES (1, 1, 'SKU-A'), (1, 2, 'SKU-B')"))
        conn.execute(
            text("INSERT INTO files (id, name, payload) VALUES (1, 'logo.png', :payload)"),
            {"payload": b"\x89PNG\x00\x01"},
        )
    engine.dispose()


def seed_crm(path) -> None:
    engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
    with engine.begin() as conn:
        conn.execute(text("CREATE TABLE contacts (id INTEGER PRIMARY KEY, full_name TEXT)"))
        conn.execute(text("INSERT INTO contacts VALUES (1, 'Grace Hopper')"))
    engine.dispose()


@pytest.fixture
def statements() -> list[str]:
    """Every SQL statement sent to any target engine during the test."""
    return []


@pytest.fixture
def engine_factory(tmp_path, statements):
    def factory(target: TargetDescriptor, pooled: bool = False):
        path = tmp_path / f"{target.database}.db"
        if pooled:
            engine = create_engine(f"sqlite:///{path}")
        else:
            engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)

        @event.listens_for(engine, "before_cursor_execute")
        def _record(conn, cursor, statement, parameters, context, executemany):
            statements.append(statement)

        return engine

    return factory


@pytest.fixture
def shop_target(tmp_path) -> TargetDescriptor:
    seed_shop(tmp_path / "shop.db")
    return TargetDescriptor(host="db.local", port=3306, database="shop", username="app", secret="s3cret")


@pytest.fixture
def crm_target(tmp_path) -> TargetDescriptor:
    seed_crm(tmp_path / "crm.db")
    return TargetDescriptor(host="db.local", port=3306, database="crm", username="app", secret="s3cret")


@pytest.fixture
def manager(engine_factory) -> ConnectionManager:
    return ConnectionManager(engine_factory=engine_factory)


# --- API ---

@pytest.fixture
def session_factory():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(session_factory, engine_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_connection_manager] = lambda: ConnectionManager(engine_factory=engine_factory)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    def _make(username: str, role: str = "user", password: str = "password") -> User:
        user = User(
            username=username,
            email=f"{username}@example.com",
            hashed_password=get_password_hash(password),
            role=role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


def auth_headers(user: User) -> dict[str, str]:
    token = create_access_token({"sub": user.username, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def owner(make_user) -> User:
    return make_user("owner")


@pytest.fixture
def shop_project(db, owner, shop_target) -> Project:
    project = Project(
        name="Shop",
        user_id=owner.id,
        db_driver="mysql",
        db_host=shop_target.host,
        db_port=shop_target.port,
        db_database=shop_target.database,
        db_username=shop_target.username,
        db_password="s3cret",
        pinned_tables=[],
        is_connected=True,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


@pytest.fixture
def add_member(db, make_user):
    def _add(project: Project, username: str, role: str) -> User:
        user = make_user(username)
        db.add(ProjectMember(project_id=project.id, user_id=user.id, role=role))
        db.commit()
        return user

    return _add


@pytest.fixture
def headers_for():
    return auth_headers

import os
import uuid
from collections.abc import Generator
from pathlib import Path
from typing import Any

import psycopg
import pytest

from docseal.config.settings import Settings
from docseal.database import connection
from docseal.database.connection import close_pool, get_connection, init_pool
from docseal.database.models import DocumentRecord, DocumentVersionRecord
from docseal.database.repositories.assignment_repository import SignerAssignmentRepository
from docseal.database.repositories.document_repository import DocumentRepository


SCHEMA_PATH = Path(connection.__file__).with_name("schema.sql")


def _test_settings() -> Settings:
    os.environ.setdefault("DB_DATABASE", "docseal_test")
    return Settings()


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    return _test_settings()


@pytest.fixture(scope="session")
def integration_pool(test_settings: Settings) -> Generator[None, None, None]:
    try:
        init_pool(test_settings)
        with get_connection() as conn:
            conn.execute(SCHEMA_PATH.read_text())
            conn.commit()
    except Exception as e:
        close_pool()
        pytest.skip(f"PostgreSQL test DB not available: {e}. Set DB_* env to point at one.")
    try:
        yield
    finally:
        close_pool()


@pytest.fixture
def db_conn(integration_pool: None) -> Generator[psycopg.Connection[Any], None, None]:
    with get_connection() as conn:
        yield conn


@pytest.fixture
def run_id() -> str:
    return uuid.uuid4().hex[:8]


@pytest.fixture
def seed_users(
    db_conn: psycopg.Connection[Any], run_id: str
) -> Generator[dict[str, str], None, None]:
    """Owner, two signers and a group admin, removed with their documents afterwards."""
    ids = {role: f"{role}-{run_id}" for role in ("owner", "signer_a", "signer_b", "admin")}
    with db_conn.cursor() as cur:
        for role, user_id in ids.items():
            cur.execute(
                "INSERT INTO users (id, name, email) VALUES (%s, %s, %s)",
                (user_id, role.replace("_", " ").title(), f"{user_id}@example.com"),
            )
    db_conn.commit()
    try:
        yield ids
    finally:
        with db_conn.cursor() as cur:
            cur.execute("DELETE FROM signing_packages WHERE owner_id = %s", (ids["owner"],))
            cur.execute("DELETE FROM documents WHERE owner_id = %s", (ids["owner"],))
            cur.execute("DELETE FROM group_members WHERE user_id = ANY(%s)", (list(ids.values()),))
            cur.execute("DELETE FROM users WHERE id = ANY(%s)", (list(ids.values()),))
        db_conn.commit()


@pytest.fixture
def seed_document(seed_users: dict[str, str], run_id: str) -> DocumentRecord:
    """A pending group document with its original version and two assigned signers."""
    document_id = f"doc-{run_id}"
    document = DocumentRepository().create_with_first_version(
        DocumentRecord(
            id=document_id,
            title="Board minutes",
            status="pending",
            owner_id=seed_users["owner"],
            group_id=42,
        ),
        DocumentVersionRecord(
            id=f"v1-{run_id}",
            document_id=document_id,
            uploader_id=seed_users["owner"],
            storage_ref=f"documents/{seed_users['owner']}/{run_id}.pdf",
            source_hash=uuid.uuid4().hex * 2,
        ),
    )
    SignerAssignmentRepository().create_assignments(
        document_id, [seed_users["signer_a"], seed_users["signer_b"]]
    )
    return document

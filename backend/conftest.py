from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"

from surgidb.database import Base  # noqa: E402
from surgidb.apps.audit import models as audit_models  # noqa: E402
from surgidb.apps.equipment import models as equipment_models  # noqa: E402
from surgidb.apps.invoices import models as invoice_models  # noqa: E402

LEDGER_TABLES = [
    equipment_models.Equipment.__table__,
    invoice_models.Invoice.__table__,
    invoice_models.InvoiceLine.__table__,
    audit_models.AuditEvent.__table__,
]


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine, tables=LEDGER_TABLES)
    TestingSession = sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture()
def file_session_factory(tmp_path):
    """
    Sessions on a file-backed SQLite database.

    Each session gets its own connection, so tests can interleave writers
    from several sessions or threads against the same rows.
    """
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine, tables=LEDGER_TABLES)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture()
def api_client(file_session_factory):
    from fastapi.testclient import TestClient

    from surgidb.database import get_db, get_read_db
    from surgidb.main import app

    def _override():
        db = file_session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override
    app.dependency_overrides[get_read_db] = _override
    try:
        with TestClient(app) as client:
            yield client
    finally:
        app.dependency_overrides.clear()

import os
import tempfile

_default_test_secret = "test-jwt-secret-for-pytest-only-0000000000000000"
if len(os.environ.get("JWT_SECRET", "")) < 32:
    os.environ["JWT_SECRET"] = _default_test_secret

os.environ["ENV"] = "test"
os.environ.pop("DEFAULT_RATE", None)

import subprocess
import sys
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

_default_sqlite_path = Path(tempfile.gettempdir()) / "shopfloor_billing_test.sqlite3"
TEST_DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{_default_sqlite_path}")
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from app import database
from app.models.customer import Customer
from app.models.machine import Machine
from app.models.report import Report
from app.models.work_order import WorkOrder
from app.models.work_record import WorkRecord
from app.models.worker import Worker

BASE_START = datetime(2026, 9, 1, 8, 0, 0)


def _get_access_token(client, user_id: str = "test", role: str = "MANAGER") -> str:
    resp = client.post("/auth/token", json={"user_id": user_id, "role": role})
    assert resp.status_code == 200, f"token request failed: {resp.status_code} {resp.text}"
    data = resp.json()
    assert isinstance(data, dict), f"token response not a JSON object: {data}"
    assert "access_token" in data, f"token response missing access_token: {data}"
    return data["access_token"]


def _ensure_database_exists(database_url: str) -> None:
    url = make_url(database_url)

    if url.drivername.startswith("sqlite"):
        if url.database and Path(url.database).exists():
            Path(url.database).unlink()
        return

    if not url.drivername.startswith("postgresql"):
        return

    db_name = url.database
    admin_url = url.set(database="postgres")
    admin_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")

    try:
        with admin_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": db_name},
            ).scalar()
            if not exists:
                safe_db_name = db_name.replace('"', '""')
                conn.execute(text(f'CREATE DATABASE "{safe_db_name}"'))
    finally:
        admin_engine.dispose()


def _clear_tables() -> None:
    with database.engine.begin() as conn:
        tables = [t.name for t in reversed(database.Base.metadata.sorted_tables)]
        if conn.dialect.name == "postgresql":
            quoted = ", ".join(f'"{name}"' for name in tables)
            conn.execute(text(f"TRUNCATE TABLE {quoted} RESTART IDENTITY CASCADE"))
        else:
            for name in tables:
                conn.execute(text(f'DELETE FROM "{name}"'))


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_database() -> None:
    _ensure_database_exists(TEST_DATABASE_URL)

    env = os.environ.copy()
    env["DATABASE_URL"] = TEST_DATABASE_URL

    subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        check=True,
        cwd=Path(__file__).resolve().parents[2],
        env=env,
    )

    database.configure_database()


@pytest.fixture(scope="function", autouse=True)
def _clear_tables_between_tests():
    _clear_tables()
    yield
    _clear_tables()


@pytest.fixture
def db():
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def make_work_order(db):
    counter = {"n": 0}

    def _make(status: str = "delivered", customer_name: str = "Kanto Steel", **fields) -> WorkOrder:
        counter["n"] += 1
        customer = db.query(Customer).filter(Customer.name == customer_name).first()
        if customer is None:
            customer = Customer(name=customer_name)
            db.add(customer)
            db.flush()

        row = WorkOrder(
            front_number=fields.pop("front_number", "26"),
            back_number=fields.pop("back_number", f"{counter['n']:03d}"),
            customer_id=customer.id,
            project_name=fields.pop("project_name", "Switchboard frame"),
            status=status,
            **fields,
        )
        db.add(row)
        db.flush()
        return row

    return _make


@pytest.fixture
def add_record(db):
    def _add(
        work_order: WorkOrder,
        hours: float,
        worker_name: str = "Sato Ichiro",
        machine_name: str = None,
        work_description: str = None,
        report_date: date = date(2026, 9, 1),
        start: datetime = BASE_START,
    ) -> WorkRecord:
        worker = db.query(Worker).filter(Worker.name == worker_name).first()
        if worker is None:
            worker = Worker(name=worker_name)
            db.add(worker)
            db.flush()

        report = (
            db.query(Report)
            .filter(Report.worker_id == worker.id, Report.report_date == report_date)
            .first()
        )
        if report is None:
            report = Report(worker_id=worker.id, report_date=report_date)
            db.add(report)
            db.flush()

        machine_id = None
        if machine_name is not None:
            machine = db.query(Machine).filter(Machine.name == machine_name).first()
            if machine is None:
                machine = Machine(name=machine_name)
                db.add(machine)
                db.flush()
            machine_id = machine.id

        row = WorkRecord(
            report_id=report.id,
            work_order_id=work_order.id,
            machine_id=machine_id,
            start_time=start,
            end_time=start + timedelta(hours=hours),
            work_description=work_description,
        )
        db.add(row)
        db.flush()
        return row

    return _add

from collections.abc import AsyncGenerator, Awaitable, Callable

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.core.database.base import Base
from src.core.database import get_db
from src.core.schools.models import School, SchoolType
from src.core.schools.scope import SchoolScope
from src.integrations.settlement.client import SettlementClient
from src.main import app
from src.modules.students.models import Student

# In-memory SQLite, one database per test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

SCHOOL_CODE = "STMARYS"
COLLECTION_ACCOUNT = "1000200030"


def _enable_savepoints(engine: AsyncEngine) -> None:
    # pysqlite-style drivers defer BEGIN; emit it ourselves so SAVEPOINT nests correctly
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    _enable_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Get test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def school(db_session: AsyncSession) -> School:
    school = School(
        code=SCHOOL_CODE,
        name="St Mary's Primary",
        school_type=SchoolType.PRIMARY.value,
        collection_account=COLLECTION_ACCOUNT,
        branch_code="120",
        continue_to_a_level=False,
        is_active=True,
    )
    db_session.add(school)
    await db_session.commit()
    return school


@pytest.fixture
def scope(school: School) -> SchoolScope:
    return SchoolScope.from_school(school, actor="bursar")


@pytest.fixture
def make_student(db_session: AsyncSession) -> Callable[..., Awaitable[Student]]:
    """Factory for students of any school."""
    counter = {"n": 0}

    async def _make(
        school: School,
        grade: str | None = "Grade 3",
        student_ref: str | None = None,
        **kwargs,
    ) -> Student:
        counter["n"] += 1
        student = Student(
            school_id=school.id,
            student_ref=student_ref or f"{school.code}-{counter['n']:04d}",
            first_name=kwargs.pop("first_name", "Student"),
            last_name=kwargs.pop("last_name", str(counter["n"])),
            grade=grade,
            class_name=kwargs.pop("class_name", None),
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db_session.add(student)
        await db_session.commit()
        return student

    return _make


@pytest.fixture
async def client(
    db_session: AsyncSession, school: School
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the test session, scoped to the default school."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-School-Code": SCHOOL_CODE, "X-Actor": "bursar"},
    ) as client:
        yield client

    app.dependency_overrides.clear()


class FakeSwitch:
    """In-process stand-in for the settlement switch, served through httpx.MockTransport."""

    def __init__(self):
        self.token_status = 200
        self.token_payload: dict = {
            "bancabc_reponse": {"response": "00", "message": "Token issued", "value": "tok-123"}
        }
        self.transfer_status = 200
        self.transfer_payload: dict = self.success_payload()
        self.transfer_exception: Exception | None = None
        self.requests: list[httpx.Request] = []

    @staticmethod
    def success_payload(xref: str | None = "120FT26018000001", fccref: str | None = None) -> dict:
        pairs = [["MSGSTAT", "SUCCESS"], ["VALUE_DT", "2026-01-18"]]
        if xref is not None:
            pairs.append(["XREF", xref])
        if fccref is not None:
            pairs.append(["FCCREF", fccref])
        return {"bancabc_reponse": {"response": "00", "message": "Success", "value": pairs}}

    @property
    def transfers(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/token"):
            return httpx.Response(self.token_status, json=self.token_payload)
        if self.transfer_exception is not None:
            raise self.transfer_exception
        return httpx.Response(self.transfer_status, json=self.transfer_payload)


@pytest.fixture
def switch() -> FakeSwitch:
    return FakeSwitch()


@pytest.fixture
async def settlement_client(switch: FakeSwitch) -> AsyncGenerator[SettlementClient, None]:
    client = SettlementClient(
        token_url="https://switch.test/api/token",
        payment_url="https://switch.test/api/transfer",
        username="fees",
        password="secret",
        timeout_seconds=5,
        max_concurrency=2,
        transport=httpx.MockTransport(switch.handler),
    )
    yield client
    await client.aclose()

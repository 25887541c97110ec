"""
Configuration for pytest.

This module provides fixtures and configuration for running tests.
"""

import os
import tempfile

# Settings are read at import time; point them at throwaway resources first.
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="formplay-tests-"))

import io
from typing import Any, List, Optional, Tuple

import pytest
from httpx import ASGITransport, AsyncClient
from pypdf import PdfWriter
from pypdf.generic import (
    ArrayObject,
    BooleanObject,
    DecodedStreamObject,
    DictionaryObject,
    FloatObject,
    NameObject,
    NumberObject,
    TextStringObject,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from formplay.core.calendar import CalendarService
from formplay.core.config import CalendarSettings, SeedUser
from formplay.core.deps import get_template_store, get_workflow
from formplay.core.exceptions import Unavailable
from formplay.core.security import create_access_token
from formplay.db.init_db import seed_users
from formplay.db.session import get_db
from formplay.main import app
from formplay.models.base import Base
from formplay.services.files import PdfSnapshotStore, TemplateStore
from formplay.services.workflow import ReportWorkflow

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEMPLATE_KEY = "tps-vanilla"
PASSWORD = "testpassword123"

FF_COMBO = 1 << 17
FF_PUSHBUTTON = 1 << 16


def _rect(x1: float, y1: float, x2: float, y2: float) -> ArrayObject:
    return ArrayObject([FloatObject(x1), FloatObject(y1), FloatObject(x2), FloatObject(y2)])


def build_form_pdf(pages: int = 1, with_acroform: bool = True) -> bytes:
    """
    A letter-size form with one field of each kind on page 1:

    ``name`` (text, max 20, default "Bill"), ``agree`` (checkbox, export
    ``Yes``), ``color`` (combo box Red/Green/Blue), ``reset`` (push button),
    ``address.city`` (text inside a parent field) and ``signature`` (a
    signature field, shown as a disabled placeholder). With two pages,
    page 2 holds a ``notes`` text field.
    """
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)

    if not with_acroform:
        out = io.BytesIO()
        writer.write(out)
        return out.getvalue()

    helv = writer._add_object(DictionaryObject({
        NameObject("/Type"): NameObject("/Font"),
        NameObject("/Subtype"): NameObject("/Type1"),
        NameObject("/BaseFont"): NameObject("/Helvetica"),
        NameObject("/Encoding"): NameObject("/WinAnsiEncoding"),
    }))
    fields = ArrayObject()
    writer._root_object[NameObject("/AcroForm")] = DictionaryObject({
        NameObject("/Fields"): fields,
        NameObject("/NeedAppearances"): BooleanObject(True),
        NameObject("/DA"): TextStringObject("/Helv 0 Tf 0 g"),
        NameObject("/DR"): DictionaryObject({
            NameObject("/Font"): DictionaryObject({NameObject("/Helv"): helv}),
        }),
    })

    def add_widget(page_index: int, entries: dict, top_level: bool = True):
        widget = DictionaryObject({
            NameObject("/Type"): NameObject("/Annot"),
            NameObject("/Subtype"): NameObject("/Widget"),
            NameObject("/F"): NumberObject(4),
        })
        widget.update({NameObject(k): v for k, v in entries.items()})
        ref = writer._add_object(widget)
        page = writer.pages[page_index]
        if "/Annots" not in page:
            page[NameObject("/Annots")] = ArrayObject()
        page["/Annots"].append(ref)
        if top_level:
            fields.append(ref)
        return ref

    def appearance_state() -> Any:
        stream = DecodedStreamObject()
        stream.set_data(b"")
        stream.update({
            NameObject("/Type"): NameObject("/XObject"),
            NameObject("/Subtype"): NameObject("/Form"),
            NameObject("/BBox"): _rect(0, 0, 14, 14),
        })
        return writer._add_object(stream)

    add_widget(0, {
        "/FT": NameObject("/Tx"),
        "/T": TextStringObject("name"),
        "/Rect": _rect(72, 700, 272, 720),
        "/MaxLen": NumberObject(20),
        "/V": TextStringObject("Bill"),
        "/DA": TextStringObject("/Helv 12 Tf 0 g"),
    })
    add_widget(0, {
        "/FT": NameObject("/Btn"),
        "/T": TextStringObject("agree"),
        "/Rect": _rect(72, 660, 86, 674),
        "/V": NameObject("/Off"),
        "/AS": NameObject("/Off"),
        "/AP": DictionaryObject({
            NameObject("/N"): DictionaryObject({
                NameObject("/Yes"): appearance_state(),
                NameObject("/Off"): appearance_state(),
            }),
        }),
    })
    add_widget(0, {
        "/FT": NameObject("/Ch"),
        "/T": TextStringObject("color"),
        "/Ff": NumberObject(FF_COMBO),
        "/Rect": _rect(72, 620, 172, 640),
        "/Opt": ArrayObject([
            TextStringObject("Red"),
            TextStringObject("Green"),
            ArrayObject([TextStringObject("b"), TextStringObject("Blue")]),
        ]),
        "/V": TextStringObject("Red"),
        "/DA": TextStringObject("/Helv 10 Tf 0 g"),
    })
    add_widget(0, {
        "/FT": NameObject("/Btn"),
        "/T": TextStringObject("reset"),
        "/Ff": NumberObject(FF_PUSHBUTTON),
        "/Rect": _rect(300, 620, 360, 640),
    })

    address = writer._add_object(DictionaryObject({
        NameObject("/FT"): NameObject("/Tx"),
        NameObject("/T"): TextStringObject("address"),
        NameObject("/Kids"): ArrayObject(),
    }))
    fields.append(address)
    city = add_widget(0, {
        "/FT": NameObject("/Tx"),
        "/T": TextStringObject("city"),
        "/Parent": address,
        "/Rect": _rect(72, 580, 272, 600),
        "/DA": TextStringObject("/Helv 10 Tf 0 g"),
    }, top_level=False)
    address.get_object()["/Kids"].append(city)

    add_widget(0, {
        "/FT": NameObject("/Sig"),
        "/T": TextStringObject("signature"),
        "/Rect": _rect(72, 100, 272, 140),
    })

    if pages > 1:
        add_widget(1, {
            "/FT": NameObject("/Tx"),
            "/T": TextStringObject("notes"),
            "/Rect": _rect(72, 700, 540, 760),
            "/DA": TextStringObject("/Helv 10 Tf 0 g"),
        })

    out = io.BytesIO()
    writer.write(out)
    return out.getvalue()


class FakeNotifier:
    """Records emails instead of sending them; can simulate an SMTP outage."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[Tuple[str, str, str]] = []

    def send(self, to: str, subject: str, body: str) -> bool:
        if self.fail:
            raise Unavailable(f"Email to {to} could not be delivered")
        self.sent.append((to, subject, body))
        return True


class BrokenCalendar(CalendarService):
    def add_event(self, user_id, event):
        raise Unavailable(f"Calendar for user {user_id} could not be updated")


class BrokenSnapshots(PdfSnapshotStore):
    def save(self, report_id, data):
        raise Unavailable("disk full")


@pytest.fixture(scope="session")
def form_pdf() -> bytes:
    return build_form_pdf()


@pytest.fixture(scope="session")
def two_page_pdf() -> bytes:
    return build_form_pdf(pages=2)


@pytest.fixture
async def db_engine():
    """A fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def users(db_session):
    """The seeded pair: (alice, bob). Alice creates, Bob receives."""
    alice, bob = await seed_users(db_session, [
        SeedUser(username="alice", password=PASSWORD, name="Alice", email="alice@example.com"),
        SeedUser(username="bob", password=PASSWORD, name="Bob", email="bob@example.com"),
    ])
    return alice, bob


@pytest.fixture
def templates(tmp_path, form_pdf) -> TemplateStore:
    directory = tmp_path / "templates"
    directory.mkdir()
    (directory / f"{TEMPLATE_KEY}.pdf").write_bytes(form_pdf)
    return TemplateStore(directory)


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def calendar(tmp_path) -> CalendarService:
    return CalendarService(directory=tmp_path / "calendars", config=CalendarSettings(enabled=True))


@pytest.fixture
def snapshots(tmp_path) -> PdfSnapshotStore:
    return PdfSnapshotStore(tmp_path / "pdfs")


@pytest.fixture
def workflow(notifier, calendar, snapshots, templates) -> ReportWorkflow:
    return ReportWorkflow(
        notifier=notifier,
        calendar=calendar,
        snapshots=snapshots,
        templates=templates,
        template_key=TEMPLATE_KEY,
        validate_fields=True,
    )


@pytest.fixture
async def async_client(session_factory, workflow, templates):
    """Create an async test client."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_workflow] = lambda: workflow
    app.dependency_overrides[get_template_store] = lambda: templates

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers(username: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(username)}"}


@pytest.fixture
def alice_headers(users) -> dict:
    return auth_headers("alice")


@pytest.fixture
def bob_headers(users) -> dict:
    return auth_headers("bob")


def form_data(fields: Optional[dict] = None, creator_state: str = "", receiver_state: str = "") -> dict:
    return {
        "fields": fields or {},
        "metadata": {
            "emotional_state": {"creator": creator_state, "receiver": receiver_state},
        },
    }

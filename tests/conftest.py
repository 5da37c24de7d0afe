"""
Pytest fixtures for the fieldwork document engine test suite.

Provides:
- A SQLite database per test (a file under tmp_path, so concurrency tests
  can open more than one connection)
- A session per test, rolled back on teardown
- DeterministicClock, default settings, an ActorContext and the services
- captured_logs for asserting on structured log output
"""

import json
import logging
from datetime import date, datetime, timezone
from io import StringIO
from uuid import uuid4

import pytest

from fieldwork_config import get_active_config
from fieldwork_config.bridges import build_document_settings
from fieldwork_kernel.db.engine import (
    create_tables,
    get_session,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from fieldwork_kernel.domain.clock import DeterministicClock
from fieldwork_kernel.domain.documents import ActorContext, DocumentKind
from fieldwork_kernel.domain.state_machine import DocumentStateMachine
from fieldwork_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fieldwork_kernel.selectors.document_selector import DocumentSelector
from fieldwork_kernel.selectors.event_selector import DocumentEventSelector
from fieldwork_kernel.services.document_service import DocumentService
from fieldwork_kernel.services.payment_recorder import PaymentRecorder
from fieldwork_kernel.services.public_gateway import PublicAcceptanceGateway
from tests.builders import labour, material

# 2026-03-02 09:00 UTC; every date in the suite is relative to this
FIXED_NOW = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)
TODAY = date(2026, 3, 2)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fieldwork_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, payments):
            payments.record_payment(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fieldwork_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def db_engine(tmp_path):
    """Fresh SQLite database with every table created."""
    eng = init_engine_from_url(f"sqlite:///{tmp_path / 'fieldwork.db'}")
    create_tables()
    yield eng
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(db_engine):
    """Session for one test; anything left uncommitted is rolled back."""
    sess = get_session()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def default_config():
    return get_active_config()


@pytest.fixture
def settings(default_config):
    return build_document_settings(default_config)


@pytest.fixture
def organization_id():
    return uuid4()


@pytest.fixture
def ctx(organization_id):
    return ActorContext(organization_id=organization_id, actor_id=uuid4())


@pytest.fixture
def other_ctx():
    """Staff member of an unrelated organization."""
    return ActorContext(organization_id=uuid4(), actor_id=uuid4())


@pytest.fixture
def client_id():
    return uuid4()


@pytest.fixture
def state_machine():
    return DocumentStateMachine()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def documents(session, deterministic_clock, settings):
    return DocumentService(session, deterministic_clock, settings)


@pytest.fixture
def payments(session, deterministic_clock):
    return PaymentRecorder(session, deterministic_clock)


@pytest.fixture
def gateway(session, deterministic_clock):
    return PublicAcceptanceGateway(session, deterministic_clock)


@pytest.fixture
def selector(session, deterministic_clock):
    return DocumentSelector(session, deterministic_clock)


@pytest.fixture
def events(session):
    return DocumentEventSelector(session)


# =============================================================================
# Documents
# =============================================================================


@pytest.fixture
def draft_quote(documents, ctx, client_id):
    """Draft quote worth $275.00: 2 x $100 labour + 1 x $50 materials."""
    quote = documents.create_quote(ctx, client_id, title="Bathroom refit")
    documents.add_line_item(ctx, DocumentKind.QUOTE, quote.id, labour("2", "100.00"))
    return documents.add_line_item(ctx, DocumentKind.QUOTE, quote.id, material("1", "50.00"))


@pytest.fixture
def sent_quote(documents, ctx, draft_quote):
    return documents.send_quote(ctx, draft_quote.id)


@pytest.fixture
def draft_invoice(documents, ctx, client_id):
    """Draft invoice worth $275.00."""
    invoice = documents.create_invoice(ctx, client_id)
    documents.add_line_item(ctx, DocumentKind.INVOICE, invoice.id, labour("2", "100.00"))
    return documents.add_line_item(ctx, DocumentKind.INVOICE, invoice.id, material("1", "50.00"))


@pytest.fixture
def sent_invoice(documents, ctx, draft_invoice):
    return documents.send_invoice(ctx, draft_invoice.id)

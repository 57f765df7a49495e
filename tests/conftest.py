"""Shared fixtures: an in-memory ledger with a few shared categories."""

from datetime import date

import pytest

from ledger_engine.audit import AuditLogger
from ledger_engine.config import LedgerSettings
from ledger_engine.models.ledger import Category, SharedScope
from ledger_engine.service import LedgerService
from ledger_engine.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


TODAY = date(2025, 3, 15)


@pytest.fixture
def ledger_settings():
    return LedgerSettings()


@pytest.fixture
def shared_categories():
    return {
        name: Category(name=name, scope=SharedScope())
        for name in ["Food", "Transport", "Housing", "Salary"]
    }


@pytest.fixture
def storage(shared_categories):
    return InMemoryLedgerStorage(shared_categories.values())


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def service(storage, audit_storage, ledger_settings):
    return LedgerService(
        storage=storage,
        audit_logger=AuditLogger(audit_storage),
        settings=ledger_settings,
        clock=lambda: TODAY,
    )

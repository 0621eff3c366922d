"""
Retry loop tests: version conflicts replay the unit of work, other errors do not.
"""

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from boutique.services.concurrency import run_with_retry


def test_stale_write_is_replayed(app, db_session):
    calls = []

    def _op():
        calls.append(1)
        if len(calls) == 1:
            raise StaleDataError("inventory_records version mismatch")
        return "ok"

    assert run_with_retry(_op, label="Checkout") == "ok"
    assert len(calls) == 2


def test_gives_up_after_configured_attempts(app, db_session, monkeypatch):
    monkeypatch.setitem(app.config, "WRITE_RETRY_ATTEMPTS", 2)
    calls = []

    def _op():
        calls.append(1)
        raise OperationalError("UPDATE orders", {}, Exception("database is locked"))

    with pytest.raises(OperationalError):
        run_with_retry(_op)
    assert len(calls) == 2


def test_domain_errors_are_not_retried(app, db_session):
    calls = []

    def _op():
        calls.append(1)
        raise ValueError("insufficient payment")

    with pytest.raises(ValueError):
        run_with_retry(_op, attempts=5)
    assert len(calls) == 1

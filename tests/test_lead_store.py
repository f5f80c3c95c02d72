# tests/test_lead_store.py
import pytest
from sqlalchemy.exc import DataError, IntegrityError, OperationalError

from leadsync.services.lead_store import (
    DuplicateLeadError,
    InvalidLeadError,
    LeadRecord,
    SqlLeadStore,
    StoreUnavailableError,
    is_unique_violation,
)

from .conftest import TENANT


class PgError(Exception):
    def __init__(self, message, sqlstate=None):
        super().__init__(message)
        self.sqlstate = sqlstate


class FakeSession:
    def __init__(self, commit_error=None):
        self.commit_error = commit_error
        self.added = []
        self.rolled_back = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return False

    def add(self, obj):
        self.added.append(obj)

    async def commit(self):
        if self.commit_error is not None:
            raise self.commit_error

    async def rollback(self):
        self.rolled_back = True


def _store(session):
    return SqlLeadStore(sessionmaker=lambda: session)


def _lead(lead_id="L1", name="Jane Doe"):
    return LeadRecord(
        external_lead_id=lead_id,
        tenant_id=TENANT,
        campaign_id="C1",
        ingestion_path="pull",
        name=name,
    )


def _integrity_error(message, sqlstate=None):
    return IntegrityError("INSERT INTO leads ...", {}, PgError(message, sqlstate))


@pytest.mark.asyncio
async def test_insert_adds_lead_row():
    session = FakeSession()

    await _store(session).insert_lead(_lead())

    assert [row.external_lead_id for row in session.added] == ["L1"]
    assert session.added[0].name == "Jane Doe"


@pytest.mark.asyncio
async def test_unique_violation_is_duplicate():
    session = FakeSession(_integrity_error("duplicate key value", sqlstate="23505"))

    with pytest.raises(DuplicateLeadError):
        await _store(session).insert_lead(_lead())

    assert session.rolled_back


@pytest.mark.asyncio
async def test_other_integrity_errors_reject_the_lead():
    session = FakeSession(_integrity_error("violates check constraint", sqlstate="23514"))

    with pytest.raises(InvalidLeadError) as exc_info:
        await _store(session).insert_lead(_lead())

    assert exc_info.value.external_lead_id == "L1"


@pytest.mark.asyncio
async def test_value_too_long_rejects_the_lead_not_the_store():
    error = DataError("INSERT INTO leads ...", {}, PgError("value too long for type character varying(200)", "22001"))
    session = FakeSession(error)

    with pytest.raises(InvalidLeadError) as exc_info:
        await _store(session).insert_lead(_lead(name="x" * 250))

    assert "value too long" in exc_info.value.message
    assert session.rolled_back


@pytest.mark.asyncio
async def test_connection_failure_is_store_unavailable():
    session = FakeSession(OperationalError("INSERT INTO leads ...", {}, PgError("connection refused")))

    with pytest.raises(StoreUnavailableError) as exc_info:
        await _store(session).insert_lead(_lead())

    assert exc_info.value.code == "insert_lead"


def test_unique_violation_detection():
    assert is_unique_violation(_integrity_error("dup", sqlstate="23505"))
    assert not is_unique_violation(_integrity_error("null value in column", sqlstate="23502"))
    assert is_unique_violation(
        _integrity_error('duplicate key value violates unique constraint "uq_leads_external_lead_id"')
    )
    assert not is_unique_violation(_integrity_error('violates check constraint "ck_leads_leads_ingestion_path_valid"'))

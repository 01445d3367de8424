from datetime import datetime, timedelta, timezone
import pytest
from sqlmodel import Session

from vaultaudit.client.database import PasswordStore, RecordNotFoundError, StoredPassword
from vaultaudit.core.crypto import CryptoManager
from vaultaudit.core.models import PasswordInput
from conftest import NOW, STRONG


@pytest.fixture(scope="module")
def crypto():
    manager = CryptoManager()
    manager.derive_key("master", "c2FsdHNhbHRzYWx0c2FsdA==")
    return manager


@pytest.fixture
def store(tmp_path, crypto):
    return PasswordStore(crypto, db_url=f"sqlite:///{tmp_path / 'nested' / 'vault.db'}")


def _input(**kwargs):
    values = {"service": "Example", "account": "me@example.org", "secret": STRONG}
    values.update(kwargs)
    return PasswordInput(**values)


def test_create_and_get(store):
    record_id = store.create("owner-1", _input(notes="work"), now=NOW)
    record = store.get(record_id)

    assert record.owner_id == "owner-1"
    assert record.secret == STRONG
    assert record.notes == "work"
    assert record.created_at == record.updated_at == NOW


def test_secret_is_encrypted_at_rest(store):
    record_id = store.create("owner-1", _input())
    with Session(store.engine) as session:
        row = session.get(StoredPassword, record_id)
        assert row.service == "Example"
        assert row.secret != STRONG
        assert row.account.startswith("gAAAAA")


def test_list_by_owner_newest_first(store):
    older = store.create("owner-1", _input(service="Old"), now=NOW - timedelta(days=3))
    newer = store.create("owner-1", _input(service="New"), now=NOW)
    store.create("owner-2", _input(service="Other"), now=NOW)

    assert [r.id for r in store.list_by_owner("owner-1")] == [newer, older]
    assert store.list_by_owner("nobody") == []


def test_update(store):
    record_id = store.create("owner-1", _input(), now=NOW)
    later = NOW + timedelta(days=1)
    expiry = datetime(2025, 9, 1)
    updated = store.update(record_id, _input(secret="N3w-S3cret!", expiry_date=expiry), now=later)

    assert updated.secret == "N3w-S3cret!"
    fetched = store.get(record_id)
    assert fetched.secret == "N3w-S3cret!"
    assert fetched.expiry_date == expiry
    assert fetched.created_at == NOW
    assert fetched.updated_at == later


def test_delete(store):
    record_id = store.create("owner-1", _input())
    store.delete(record_id)
    with pytest.raises(RecordNotFoundError):
        store.get(record_id)
    with pytest.raises(RecordNotFoundError):
        store.delete(record_id)
    with pytest.raises(RecordNotFoundError):
        store.update(record_id, _input())


def test_kdf_salt_is_stable(store):
    salt = store.get_kdf_salt()
    assert salt
    assert store.get_kdf_salt() == salt


def test_timestamps_are_stored_naive(store):
    assert StoredPassword.__table__.c.created_at.type.timezone is False
    assert StoredPassword.__table__.c.expiry_date.type.timezone is False

    aware_expiry = datetime(2025, 9, 1, 8, 0, tzinfo=timezone.utc)
    record_id = store.create("owner-1", _input(expiry_date=aware_expiry), now=NOW)
    fetched = store.get(record_id)
    assert fetched.expiry_date.tzinfo is None
    assert fetched.expiry_date == aware_expiry.astimezone().replace(tzinfo=None)

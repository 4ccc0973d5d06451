"""
Storage and Persistence Sync Tests.

============================================================
PURPOSE
============================================================
Tests against an in-memory SQLite store: wallet lifecycle,
idempotent artifact upsert, conflict replay and read schemas.

TEST CATEGORIES:
- Wallet tests: creation, case-insensitive uniqueness, cascade delete
- Upsert tests: insert/update counting, chunking, user-owned fields
- Conflict tests: concurrent-insert replay, per-row error reporting
- Schema tests: pydantic read shapes from ORM rows

============================================================
"""

import uuid

import pytest

from data_ingestion.types import NormalizedArtifact, ParsedMetadata, RawMetadata
from storage.database import (
    create_database_engine,
    create_session_factory,
    init_database,
    session_scope,
    verify_database_connection,
)
from storage.repositories.artifacts import ArtifactRepository
from storage.repositories.exceptions import (
    DuplicateRecordError,
    RecordNotFoundError,
    ValidationError,
)
from storage.repositories.wallets import WalletRepository
from storage.schemas import ArtifactRead, WalletRead
from storage.sync import PersistenceSync, chunked


EVM_ADDRESS = "0x" + "Ab" * 20


# ============================================================
# FIXTURES
# ============================================================

@pytest.fixture
def engine():
    db_engine = create_database_engine("sqlite://")
    init_database(db_engine)
    yield db_engine
    db_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def sync(session_factory):
    return PersistenceSync(session_factory)


@pytest.fixture
def wallet_id(session_factory):
    with session_scope(session_factory) as session:
        repo = WalletRepository(session)
        wallet = repo.create("alice", EVM_ADDRESS, nickname="main")
        repo.commit()
        return wallet.id


def make_artifact(wallet_id, token_id="1", title=None, **overrides):
    values = dict(
        wallet_id=wallet_id,
        network="polygon",
        contract_address="0xc0ffee",
        token_id=token_id,
        token_standard="ERC721",
        title=title or f"Piece {token_id}",
        media_url=f"https://ipfs.io/ipfs/Qm/{token_id}.png",
        metadata=ParsedMetadata({"name": title or f"Piece {token_id}"}),
    )
    values.update(overrides)
    return NormalizedArtifact(**values)


# ============================================================
# WALLET TESTS
# ============================================================

class TestWalletRepository:
    """Tests for WalletRepository."""

    def test_create_detects_family(self, session_factory, wallet_id):
        """Test creation stores the family and lower-cased key."""
        with session_scope(session_factory) as session:
            wallet = WalletRepository(session).get(wallet_id)

            assert wallet.chain_family == "evm"
            assert wallet.address == EVM_ADDRESS
            assert wallet.address_key == EVM_ADDRESS.lower()
            assert wallet.active_networks == []

    def test_invalid_address_rejected(self, session_factory):
        """Test addresses matching no chain family are rejected."""
        with session_scope(session_factory) as session:
            with pytest.raises(ValidationError):
                WalletRepository(session).create("alice", "vitalik.eth")

    def test_address_unique_per_user_ignoring_case(self, session_factory, wallet_id):
        """Test the same address in another case is a duplicate for the same user."""
        with session_scope(session_factory) as session:
            repo = WalletRepository(session)
            with pytest.raises(DuplicateRecordError):
                repo.create("alice", EVM_ADDRESS.lower())
            repo.rollback()

            other = repo.create("bob", EVM_ADDRESS)
            repo.commit()
            assert other.user_id == "bob"

    def test_get_by_address(self, session_factory, wallet_id):
        """Test lookup is case-insensitive."""
        with session_scope(session_factory) as session:
            wallet = WalletRepository(session).get_by_address("alice", EVM_ADDRESS.upper().replace("0X", "0x"))
            assert wallet.id == wallet_id

    def test_delete_cascades_to_artifacts(self, session_factory, sync, wallet_id):
        """Test deleting a wallet deletes its artifacts."""
        sync.upsert_batch([make_artifact(wallet_id, "1"), make_artifact(wallet_id, "2")])

        assert sync.delete_wallet(wallet_id)

        with session_scope(session_factory) as session:
            assert ArtifactRepository(session).count_for_wallet(wallet_id) == 0
        assert sync.get_wallet(wallet_id) is None
        assert not sync.delete_wallet(wallet_id)

    def test_active_networks_unknown_wallet(self, sync):
        """Test updating an unknown wallet raises RecordNotFoundError."""
        with pytest.raises(RecordNotFoundError):
            sync.set_active_networks(uuid.uuid4(), ["eth"])


# ============================================================
# UPSERT TESTS
# ============================================================

class TestUpsertBatch:
    """Tests for PersistenceSync.upsert_batch."""

    def test_insert_then_update(self, sync, wallet_id):
        """Test running the same batch twice yields zero inserts the second time."""
        batch = [make_artifact(wallet_id, str(i)) for i in range(3)]

        first = sync.upsert_batch(batch)
        second = sync.upsert_batch(batch)

        assert (first.inserted, first.updated) == (3, 0)
        assert (second.inserted, second.updated) == (0, 3)
        assert second.errors == []
        assert len(sync.list_artifacts(wallet_id)) == 3

    def test_update_overwrites_provider_fields(self, sync, wallet_id):
        """Test provider-owned columns are refreshed on update."""
        sync.upsert_batch([make_artifact(wallet_id, "1", title="Old")])
        sync.upsert_batch([make_artifact(wallet_id, "1", title="New")])

        stored = sync.list_artifacts(wallet_id)
        assert len(stored) == 1
        assert stored[0].title == "New"
        assert stored[0].metadata_dict == {"name": "New"}

    def test_spam_flag_user_owned(self, sync, wallet_id):
        """Test a user's spam flag survives later ingestion runs."""
        sync.upsert_batch([make_artifact(wallet_id, "1")])
        artifact_id = sync.list_artifacts(wallet_id)[0].id

        sync.set_spam(artifact_id, True)
        sync.upsert_batch([make_artifact(wallet_id, "1", is_spam=False)])

        assert sync.list_artifacts(wallet_id)[0].is_spam is True

    def test_raw_metadata_stored_verbatim(self, sync, wallet_id):
        """Test non-object metadata is stored as the original string."""
        sync.upsert_batch([make_artifact(wallet_id, "1", metadata=RawMetadata("plain text"))])

        stored = sync.list_artifacts(wallet_id)[0]
        assert stored.metadata_json == "plain text"
        assert stored.metadata_dict == {}

    def test_chunking(self, session_factory, wallet_id):
        """Test batches are split into chunks of at most the batch size."""
        sync = PersistenceSync(session_factory, batch_size=2)
        summary = sync.upsert_batch([make_artifact(wallet_id, str(i)) for i in range(5)])

        assert summary.chunks == 3
        assert summary.inserted == 5

    def test_batch_size_capped(self, session_factory):
        """Test the batch size never exceeds 100."""
        assert PersistenceSync(session_factory, batch_size=1000).batch_size == 100

    def test_empty_batch(self, sync):
        """Test an empty batch is a no-op."""
        summary = sync.upsert_batch([])
        assert summary.total == 0
        assert summary.chunks == 0

    def test_chunked_helper(self):
        """Test chunked slices preserve order."""
        assert [list(c) for c in chunked([1, 2, 3, 4, 5], 2)] == [[1, 2], [3, 4], [5]]

    def test_list_filters(self, sync, session_factory, wallet_id):
        """Test network and spam filters."""
        sync.upsert_batch([
            make_artifact(wallet_id, "1"),
            make_artifact(wallet_id, "2", network="eth", is_spam=True),
        ])

        assert [a.token_id for a in sync.list_artifacts(wallet_id, network="eth")] == ["2"]
        with session_scope(session_factory) as session:
            clean = ArtifactRepository(session).list_for_wallet(wallet_id, include_spam=False)
            assert [a.token_id for a in clean] == ["1"]


# ============================================================
# CONFLICT TESTS
# ============================================================

class TestConflicts:
    """Tests for conflict replay and error reporting."""

    def test_concurrent_insert_replayed_as_update(self, sync, wallet_id, monkeypatch):
        """Test a lost insert race is replayed and becomes an update."""
        sync.upsert_batch([make_artifact(wallet_id, "1", title="Winner")])

        real_find = ArtifactRepository.find_by_natural_key
        calls = {"count": 0}

        def racing_find(self, *key):
            calls["count"] += 1
            if calls["count"] == 1:
                # The row was committed by another writer after our lookup
                return None
            return real_find(self, *key)

        monkeypatch.setattr(ArtifactRepository, "find_by_natural_key", racing_find)

        summary = sync.upsert_batch([
            make_artifact(wallet_id, "1", title="Loser"),
            make_artifact(wallet_id, "2"),
        ])

        assert summary.replayed_chunks == 1
        assert summary.inserted == 1
        assert summary.updated == 1
        assert summary.errors == []
        titles = {a.token_id: a.title for a in sync.list_artifacts(wallet_id)}
        assert titles == {"1": "Loser", "2": "Piece 2"}

    def test_failed_rows_reported(self, sync, wallet_id):
        """Test rows that cannot be written are reported per artifact."""
        orphan = make_artifact(uuid.uuid4(), "9")

        summary = sync.upsert_batch([make_artifact(wallet_id, "1"), orphan])

        assert summary.inserted == 1
        assert len(summary.errors) == 1
        assert summary.errors[0].natural_key == orphan.natural_key
        assert summary.to_dict()["errors"][0]["error_type"] == "PersistenceConflictError"


# ============================================================
# SCHEMA TESTS
# ============================================================

class TestSchemas:
    """Tests for pydantic read shapes."""

    def test_artifact_read(self, sync, wallet_id):
        """Test ArtifactRead validates from an ORM row."""
        sync.upsert_batch([make_artifact(wallet_id, "1")])

        row = ArtifactRead.model_validate(sync.list_artifacts(wallet_id)[0])

        assert row.wallet_id == wallet_id
        assert row.metadata == {"name": "Piece 1"}
        assert row.metadata_dict == {"name": "Piece 1"}
        assert row.list_key == ("0xc0ffee", "1")
        assert row.created_at is not None

    def test_wallet_read(self, sync, wallet_id):
        """Test WalletRead validates from an ORM row."""
        sync.set_active_networks(wallet_id, ["polygon"])

        wallet = WalletRead.model_validate(sync.get_wallet(wallet_id))

        assert wallet.id == wallet_id
        assert wallet.nickname == "main"
        assert wallet.active_networks == ["polygon"]

    def test_verify_connection(self, engine):
        """Test the connectivity probe."""
        assert verify_database_connection(engine)

"""Tests for certificate stores (in-memory and SQL)."""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from certikas.certificates.entity import (
    Certificate,
    CertificateState,
    ContentCategory,
    record_confirmations,
    revoke_certificate,
)
from certikas.db.session import build_engine, get_session_factory, init_db
from certikas.errors import CertificateNotFound
from certikas.provenance.digest import digest
from certikas.storage.memory import InMemoryCertificateStore
from certikas.storage.sql import SqlCertificateStore, to_record

from tests.conftest import FIXED_NOW


@pytest.fixture
def session_factory(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'certikas.db'}")
    init_db(engine)
    yield get_session_factory(engine)
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def any_store(request, session_factory):
    if request.param == "memory":
        return InMemoryCertificateStore()
    return SqlCertificateStore(session_factory)


def make_certificate(content: bytes = b"stored content", **overrides) -> Certificate:
    fields = {
        "content_digest": digest(content),
        "category": ContentCategory.ARTICLE,
        "ledger_reference": "R1",
        "claimant_id": "kaspa:alice",
        "created_at": FIXED_NOW,
        "metadata": {"title": "Stored"},
    }
    fields.update(overrides)
    return Certificate.issue(**fields)


class TestCertificateStore:
    """Behaviour shared by every store."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, any_store):
        certificate = make_certificate()
        stored, inserted = await any_store.insert_if_absent(certificate)

        assert inserted is True
        loaded = await any_store.get(certificate.id)
        assert loaded == stored
        assert loaded.created_at == FIXED_NOW
        assert loaded.metadata == {"title": "Stored"}

    @pytest.mark.asyncio
    async def test_mutating_caller_metadata_does_not_change_stored_record(self, any_store):
        metadata = {"title": "Stored"}
        certificate = make_certificate(metadata=metadata)
        await any_store.insert_if_absent(certificate)

        metadata["title"] = "Changed"

        assert (await any_store.get(certificate.id)).metadata == {"title": "Stored"}

    @pytest.mark.asyncio
    async def test_get_missing(self, any_store):
        with pytest.raises(CertificateNotFound):
            await any_store.get("cert_missing")

    @pytest.mark.asyncio
    async def test_second_active_certificate_for_digest_is_rejected(self, any_store):
        first = make_certificate()
        await any_store.insert_if_absent(first)

        stored, inserted = await any_store.insert_if_absent(make_certificate(ledger_reference="R2"))

        assert inserted is False
        assert stored.id == first.id

    @pytest.mark.asyncio
    async def test_revoked_digest_can_be_reused(self, any_store):
        first = make_certificate()
        await any_store.insert_if_absent(first)
        revoked = revoke_certificate(first, "fraud", FIXED_NOW)
        assert await any_store.compare_and_set(revoked, expected_version=first.version)

        assert await any_store.find_active_by_digest(first.content_digest) is None
        found = await any_store.find_by_digest(first.content_digest)
        assert found.id == first.id
        assert found.is_revoked

        second = make_certificate(ledger_reference="R2", created_at=FIXED_NOW + timedelta(minutes=1))
        stored, inserted = await any_store.insert_if_absent(second)
        assert inserted is True
        assert (await any_store.find_by_digest(first.content_digest)).id == second.id

    @pytest.mark.asyncio
    async def test_compare_and_set_rejects_stale_version(self, any_store):
        certificate = make_certificate()
        await any_store.insert_if_absent(certificate)

        deeper = record_confirmations(certificate, 3, FIXED_NOW)
        assert await any_store.compare_and_set(deeper, expected_version=1)

        stale = record_confirmations(certificate, 2, FIXED_NOW)
        assert await any_store.compare_and_set(stale, expected_version=1) is False

        loaded = await any_store.get(certificate.id)
        assert loaded.confirmation_depth == 3
        assert loaded.version == 2

    @pytest.mark.asyncio
    async def test_compare_and_set_missing_certificate(self, any_store):
        with pytest.raises(CertificateNotFound):
            await any_store.compare_and_set(make_certificate(), expected_version=1)

    @pytest.mark.asyncio
    async def test_confirmed_state_round_trips(self, any_store):
        certificate = make_certificate()
        await any_store.insert_if_absent(certificate)
        confirmed = record_confirmations(certificate, 6, FIXED_NOW)
        await any_store.compare_and_set(confirmed, expected_version=certificate.version)

        loaded = await any_store.get(certificate.id)
        assert loaded.state is CertificateState.CONFIRMED
        assert loaded.confirmed_at == FIXED_NOW

    @pytest.mark.asyncio
    async def test_list_by_claimant_newest_first(self, any_store):
        for index in range(4):
            await any_store.insert_if_absent(
                make_certificate(
                    content=f"listed {index}".encode(),
                    created_at=FIXED_NOW + timedelta(minutes=index),
                )
            )
        await any_store.insert_if_absent(make_certificate(content=b"other", claimant_id="kaspa:bob"))

        listed = await any_store.list_by_claimant("kaspa:alice")
        assert [c.created_at for c in listed] == [FIXED_NOW + timedelta(minutes=i) for i in (3, 2, 1, 0)]

        page = await any_store.list_by_claimant("kaspa:alice", limit=2, offset=1)
        assert [c.created_at for c in page] == [FIXED_NOW + timedelta(minutes=i) for i in (2, 1)]

        assert await any_store.list_by_claimant("kaspa:alice", state=CertificateState.CONFIRMED) == []

    @pytest.mark.asyncio
    async def test_statistics(self, any_store):
        await any_store.insert_if_absent(make_certificate(content=b"new"))
        await any_store.insert_if_absent(
            make_certificate(
                content=b"last week",
                category=ContentCategory.VIDEO,
                created_at=FIXED_NOW - timedelta(days=5),
            )
        )
        await any_store.insert_if_absent(
            make_certificate(content=b"old", created_at=FIXED_NOW - timedelta(days=60))
        )

        stats = await any_store.statistics(FIXED_NOW)

        assert stats.total == 3
        assert stats.pending == 3
        assert stats.by_category == {"article": 2, "video": 1}
        assert (stats.today, stats.this_week, stats.this_month) == (1, 2, 2)


    @pytest.mark.asyncio
    async def test_statistics_counts_each_state(self, any_store):
        pending = make_certificate(content=b"pending")
        confirmed = make_certificate(content=b"confirmed", category=ContentCategory.IMAGE)
        revoked = make_certificate(content=b"revoked")
        for certificate in (pending, confirmed, revoked):
            await any_store.insert_if_absent(certificate)
        await any_store.compare_and_set(record_confirmations(confirmed, 6, FIXED_NOW), expected_version=1)
        await any_store.compare_and_set(revoke_certificate(revoked, "fraud", FIXED_NOW), expected_version=1)

        stats = await any_store.statistics(FIXED_NOW)

        assert (stats.total, stats.pending, stats.confirmed, stats.revoked) == (3, 1, 1, 1)
        assert stats.by_category == {"article": 2, "image": 1}

    @pytest.mark.asyncio
    async def test_search_matches_claimant_and_metadata_values(self, any_store):
        await any_store.insert_if_absent(
            make_certificate(content=b"launch", metadata={"title": "Product Launch", "tags": ["space", "news"]})
        )
        await any_store.insert_if_absent(
            make_certificate(
                content=b"bob",
                claimant_id="kaspa:bob",
                metadata={"title": "Recipes", "pages": 120},
                created_at=FIXED_NOW + timedelta(minutes=1),
            )
        )

        assert [c.claimant_id for c in await any_store.search("launch")] == ["kaspa:alice"]
        assert [c.claimant_id for c in await any_store.search("NEWS")] == ["kaspa:alice"]
        assert [c.claimant_id for c in await any_store.search("kaspa:bob")] == ["kaspa:bob"]
        assert [c.claimant_id for c in await any_store.search("120")] == ["kaspa:bob"]
        assert [c.claimant_id for c in await any_store.search("kaspa")] == ["kaspa:bob", "kaspa:alice"]

    @pytest.mark.asyncio
    async def test_search_ignores_keys_and_treats_wildcards_literally(self, any_store):
        await any_store.insert_if_absent(make_certificate(content=b"a", metadata={"title": "50% off"}))
        await any_store.insert_if_absent(make_certificate(content=b"b", metadata={"title": "500 items"}))

        assert await any_store.search("title") == []
        assert [c.metadata["title"] for c in await any_store.search("0%")] == ["50% off"]
        assert await any_store.search("0_") == []

    @pytest.mark.asyncio
    async def test_search_non_ascii_and_pagination(self, any_store):
        for index in range(3):
            await any_store.insert_if_absent(
                make_certificate(
                    content=f"café {index}".encode(),
                    metadata={"title": f"Café review {index}"},
                    created_at=FIXED_NOW + timedelta(minutes=index),
                )
            )

        page = await any_store.search("café", limit=2, offset=1)

        assert [c.metadata["title"] for c in page] == ["Café review 1", "Café review 0"]


class TestInMemoryStore:
    @pytest.mark.asyncio
    async def test_concurrent_inserts_admit_one(self):
        store = InMemoryCertificateStore()
        results = await asyncio.gather(
            *(store.insert_if_absent(make_certificate(ledger_reference=f"R{i}")) for i in range(5))
        )
        assert sum(1 for _, inserted in results if inserted) == 1
        assert len(store) == 1


class TestSqlStore:
    def test_partial_unique_index_enforced_by_database(self, session_factory):
        """The database itself refuses a second active row for a digest."""
        with session_factory() as db:
            db.add(to_record(make_certificate(ledger_reference="R1")))
            db.commit()
            db.add(to_record(make_certificate(ledger_reference="R2")))
            with pytest.raises(IntegrityError):
                db.commit()
            db.rollback()

    def test_revoked_rows_do_not_count_toward_uniqueness(self, session_factory):
        revoked = revoke_certificate(make_certificate(), "fraud", FIXED_NOW)
        with session_factory() as db:
            db.add(to_record(revoked))
            db.add(to_record(make_certificate(ledger_reference="R2")))
            db.commit()

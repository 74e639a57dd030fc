"""
Tests for the local durable store.
"""
from decimal import Decimal
from typing import Any, Dict
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pos_resilience.core.exceptions import TransactionNotFoundError
from pos_resilience.core.models import OfflineTransaction, Receipt, generate_offline_id
from pos_resilience.core.offline_sales import record_offline_sale
from pos_resilience.core.offline_storage import OfflineStorage, normalize_synced
from pos_resilience.database.models import OfflineTransactionRecord


def _sealed(storage: OfflineStorage, sale: Dict[str, Any], **overrides: Any) -> OfflineTransaction:
    transaction = OfflineTransaction.new(**{**sale, **overrides})
    transaction.integrity_hash = storage.generate_integrity_hash(transaction)
    return transaction


class TestNormalizeSynced:

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "value, expected",
        [
            (True, True),
            (False, False),
            (1, True),
            (0, False),
            ("1", True),
            ("0", False),
            ("true", True),
            (" TRUE ", True),
            ("false", False),
            (b"1", True),
            (None, False),
        ],
    )
    def test_normalize_synced(self, value: Any, expected: bool) -> None:
        assert normalize_synced(value) is expected


class TestIntegrityHash:

    @pytest.mark.unit
    def test_hash_is_stable(self, storage: OfflineStorage, sample_sale: Dict[str, Any]) -> None:
        transaction = _sealed(storage, sample_sale)

        assert len(transaction.integrity_hash) == 64
        assert storage.generate_integrity_hash(transaction) == transaction.integrity_hash
        assert storage.validate_integrity(transaction) is True

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "field, value",
        [
            ("total", Decimal("50.00")),
            ("timestamp", "2020-01-01T00:00:00+00:00"),
        ],
    )
    def test_tampered_field_fails_validation(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any], field: str, value: Any
    ) -> None:
        transaction = _sealed(storage, sample_sale)
        setattr(transaction, field, value)

        assert storage.validate_integrity(transaction) is False

    @pytest.mark.unit
    def test_tampered_items_fail_validation(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any]
    ) -> None:
        transaction = _sealed(storage, sample_sale)
        transaction.items[0].quantity = 3

        assert storage.validate_integrity(transaction) is False

    @pytest.mark.unit
    def test_fields_outside_hash_do_not_matter(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any]
    ) -> None:
        transaction = _sealed(storage, sample_sale)
        transaction.customer_id = "cust-9"
        transaction.synced = True

        assert storage.validate_integrity(transaction) is True

    @pytest.mark.unit
    def test_equivalent_money_spellings_hash_the_same(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any]
    ) -> None:
        a = OfflineTransaction.new(**{**sample_sale, "total": "9.99"}, id="a", timestamp="t")
        b = OfflineTransaction.new(**{**sample_sale, "total": Decimal("9.990")}, id="b", timestamp="t")

        assert storage.generate_integrity_hash(a) == storage.generate_integrity_hash(b)


class TestOfflineStorage:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_store_and_load_round_trip(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any]
    ) -> None:
        transaction = _sealed(storage, sample_sale, customer_id="cust-1")
        await storage.store_transaction(transaction)

        loaded = await storage.get_transaction(transaction.id)

        assert loaded == transaction
        assert loaded.total == Decimal("9.99")
        assert storage.validate_integrity(loaded) is True

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_get_missing_transaction(self, storage: OfflineStorage) -> None:
        assert await storage.get_transaction("offline_missing") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_store_is_an_upsert(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any]
    ) -> None:
        transaction = _sealed(storage, sample_sale)
        await storage.store_transaction(transaction)

        transaction.payment_method = "card"
        await storage.store_transaction(transaction)

        unsynced = await storage.get_unsynced_transactions()
        assert len(unsynced) == 1
        assert unsynced[0].payment_method == "card"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unsynced_listed_oldest_first(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any]
    ) -> None:
        late = _sealed(storage, sample_sale, timestamp="2024-05-01T10:00:02+00:00")
        early = _sealed(storage, sample_sale, timestamp="2024-05-01T10:00:01+00:00")
        done = _sealed(storage, sample_sale, timestamp="2024-05-01T10:00:00+00:00", synced=True)
        for transaction in (late, early, done):
            await storage.store_transaction(transaction)

        unsynced = await storage.get_unsynced_transactions()

        assert [t.id for t in unsynced] == [early.id, late.id]
        assert await storage.count_unsynced() == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_synced_rows_are_filtered_by_the_query(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any]
    ) -> None:
        pending = _sealed(storage, sample_sale)
        await storage.store_transaction(pending)
        for _ in range(3):
            await storage.store_transaction(_sealed(storage, sample_sale, synced=True))

        with patch(
            "pos_resilience.core.offline_storage.normalize_synced", wraps=normalize_synced
        ) as spy:
            unsynced = await storage.get_unsynced_transactions()

        assert [t.id for t in unsynced] == [pending.id]
        assert spy.call_args_list
        assert all(call.args[0] == 0 for call in spy.call_args_list)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mark_synced_is_idempotent(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any]
    ) -> None:
        transaction = _sealed(storage, sample_sale)
        await storage.store_transaction(transaction)

        await storage.mark_transaction_synced(transaction.id)
        await storage.mark_transaction_synced(transaction.id)

        loaded = await storage.get_transaction(transaction.id)
        assert loaded.synced is True
        assert storage.validate_integrity(loaded) is True
        assert await storage.get_unsynced_transactions() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_mark_synced_unknown_id(self, storage: OfflineStorage) -> None:
        with pytest.raises(TransactionNotFoundError):
            await storage.mark_transaction_synced("offline_missing")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_unreadable_row_is_skipped(
        self,
        storage: OfflineStorage,
        session_factory: async_sessionmaker[AsyncSession],
        sample_sale: Dict[str, Any],
    ) -> None:
        good = _sealed(storage, sample_sale)
        bad = _sealed(storage, sample_sale)
        await storage.store_transaction(good)
        await storage.store_transaction(bad)

        async with session_factory() as session:
            await session.execute(
                update(OfflineTransactionRecord)
                .where(OfflineTransactionRecord.id == bad.id)
                .values(payload={"items": "garbage"})
            )
            await session.commit()

        unsynced = await storage.get_unsynced_transactions()

        assert [t.id for t in unsynced] == [good.id]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_read_failure_returns_empty_list(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        # Tables never created
        store = OfflineStorage(session_factory)

        assert await store.get_unsynced_transactions() == []

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_init_is_idempotent(self, storage: OfflineStorage) -> None:
        await storage.init()
        await storage.init()


class TestReceipts:

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_receipt_replaced_per_transaction(self, storage: OfflineStorage) -> None:
        transaction_id = generate_offline_id()
        await storage.store_receipt(
            Receipt(id="r1", transaction_id=transaction_id, content="first", timestamp="t1")
        )
        await storage.store_receipt(
            Receipt(id="r2", transaction_id=transaction_id, content="second", timestamp="t2")
        )

        receipt = await storage.get_receipt(transaction_id)

        assert receipt.id == "r2"
        assert receipt.content == "second"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_receipt(self, storage: OfflineStorage) -> None:
        assert await storage.get_receipt("offline_missing") is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_record_offline_sale(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any]
    ) -> None:
        transaction = await record_offline_sale(storage, **sample_sale)

        assert transaction.id.startswith("offline_")
        assert transaction.synced is False
        assert storage.validate_integrity(transaction) is True

        stored = await storage.get_transaction(transaction.id)
        assert stored == transaction

        receipt = await storage.get_receipt(transaction.id)
        assert receipt.id == f"receipt_{transaction.id}"
        assert "OFFLINE RECEIPT" in receipt.content
        assert "TOTAL: $9.99" in receipt.content

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failed_receipt_write_keeps_no_sale(
        self, storage: OfflineStorage, sample_sale: Dict[str, Any]
    ) -> None:
        with patch.object(
            OfflineStorage, "_merge_receipt", new=AsyncMock(side_effect=RuntimeError("disk full"))
        ):
            with pytest.raises(RuntimeError, match="disk full"):
                await record_offline_sale(storage, **sample_sale)

        assert await storage.get_unsynced_transactions() == []
        assert await storage.count_unsynced() == 0

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from events import SubscriptionBus
from models import Category, Collection, Frequency, ThemeColor
from schemas import SavingsProjectIn, Transaction, TransactionIn
from services import DataService, ImportService, RecordNotFound, same_id
from store import RecordStore, StorePersistenceError


def _service(session: Session) -> DataService:
    return DataService(RecordStore(session, seed_defaults=False))


def _txn_in(day: date, amount: str, description: str = "Lunch") -> TransactionIn:
    return TransactionIn(
        date=day,
        description=description,
        amount=Decimal(amount),
        category=Category.food,
    )


def test_same_id_ignores_surrounding_whitespace() -> None:
    assert same_id(" abc ", "abc")
    assert same_id(42, "42")
    assert not same_id("abc", "abd")


def test_add_transaction_grows_collection_by_one_with_unique_id() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        for idx in range(3):
            before = service.transactions.list()
            txn = service.transactions.add(_txn_in(date(2025, 1, idx + 1), "12.50"))
            after = service.transactions.list()

            assert len(after) == len(before) + 1
            assert after[-1] == txn
            assert [t.id for t in after].count(txn.id) == 1

        # Identical content is accepted; only identity must be unique.
        service.transactions.add(_txn_in(date(2025, 1, 1), "12.50"))
        assert len({t.id for t in service.transactions.list()}) == 4


def test_delete_twice_is_same_as_delete_once() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        keep = service.transactions.add(_txn_in(date(2025, 1, 1), "5"))
        drop = service.transactions.add(_txn_in(date(2025, 1, 2), "7"))

        service.transactions.delete(f"  {drop.id} ")
        after_once = service.transactions.list()

        with pytest.raises(RecordNotFound):
            service.transactions.delete(drop.id)
        assert service.transactions.list() == after_once == [keep]


def test_delete_unknown_id_does_not_notify() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        service.transactions.add(_txn_in(date(2025, 1, 1), "5"))
        calls: list[tuple] = []
        service.subscribe(Collection.transactions, calls.append)

        with pytest.raises(RecordNotFound):
            service.transactions.delete("missing")

        assert len(calls) == 1  # initial snapshot only


def test_update_unknown_id_leaves_store_unchanged() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        service.transactions.add(_txn_in(date(2025, 1, 1), "5"))
        before = service.transactions.list()
        version = service.store.version(Collection.transactions)

        ghost = Transaction(id="ghost", **_txn_in(date(2025, 1, 9), "99").model_dump())
        with pytest.raises(RecordNotFound):
            service.transactions.update(ghost)

        assert service.transactions.list() == before
        assert service.store.version(Collection.transactions) == version


def test_update_matches_trimmed_id_and_keeps_position() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        first = service.transactions.add(_txn_in(date(2025, 1, 1), "5", "Coffee"))
        second = service.transactions.add(_txn_in(date(2025, 1, 2), "8", "Bagel"))
        third = service.transactions.add(_txn_in(date(2025, 1, 3), "9", "Tea"))

        edited = second.model_copy(update={"id": f" {second.id}\t", "amount": Decimal("11")})
        updated = service.transactions.update(edited)

        records = service.transactions.list()
        assert [t.id for t in records] == [first.id, second.id, third.id]
        assert updated.id == second.id
        assert records[1].amount == Decimal("11")
        assert records[1].description == "Bagel"


def test_two_subscribers_receive_post_add_snapshot_in_order() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        service.transactions.add(_txn_in(date(2025, 1, 1), "5"))
        size = len(service.transactions.list())
        calls: list[tuple[str, int]] = []

        service.subscribe(Collection.transactions, lambda snap: calls.append(("a", len(snap))))
        service.subscribe(Collection.transactions, lambda snap: calls.append(("b", len(snap))))
        calls.clear()

        service.transactions.add(_txn_in(date(2025, 1, 2), "6"))

        assert calls == [("a", size + 1), ("b", size + 1)]


def test_subscribe_delivers_current_snapshot_immediately() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        txn = service.transactions.add(_txn_in(date(2025, 1, 1), "5"))
        received: list[tuple] = []

        token = service.subscribe(Collection.transactions, received.append)
        assert received == [(txn,)]

        token.unsubscribe()
        service.transactions.add(_txn_in(date(2025, 1, 2), "6"))
        assert len(received) == 1


def test_failed_persist_raises_and_skips_notification(monkeypatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        service.transactions.add(_txn_in(date(2025, 1, 1), "5"))
        calls: list[tuple] = []
        service.subscribe(Collection.transactions, calls.append)

        def fail_write(collection, records) -> None:
            raise StorePersistenceError("disk full")

        monkeypatch.setattr(service.store, "write", fail_write)
        with pytest.raises(StorePersistenceError):
            service.transactions.add(_txn_in(date(2025, 1, 2), "6"))
        monkeypatch.undo()

        assert len(calls) == 1
        assert len(service.transactions.list()) == 1


def test_set_budget_upserts_month_and_overwrites_category() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        notified: list[tuple] = []
        service.subscribe(Collection.budgets, notified.append)

        service.budgets.set_budget("2025-01", Category.groceries, Decimal("300"))
        service.budgets.set_budget("2025-01", Category.housing, Decimal("1200"))
        service.budgets.set_budget("2025-01", Category.groceries, Decimal("350"))
        service.budgets.set_budget("2025-02", Category.travel, Decimal("-20"))

        budgets = service.budgets.list()
        assert [b.month for b in budgets] == ["2025-01", "2025-02"]
        january = service.budgets.get_month("2025-01")
        assert january.categories == {
            Category.groceries: Decimal("350"),
            Category.housing: Decimal("1200"),
        }
        assert january.total == Decimal("1550")
        assert service.budgets.get_month("2025-02").total == Decimal("-20")
        assert service.budgets.get_month("2025-03") is None
        assert len(notified) == 5


def test_set_budget_rejects_malformed_month_key() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        with pytest.raises(ValueError):
            service.budgets.set_budget("2025-13", Category.groceries, Decimal("1"))
        assert service.budgets.list() == []


def test_savings_projects_add_update_delete() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        trip = service.savings.add(
            SavingsProjectIn(name="Trip", amount=Decimal("200"), frequency=Frequency.monthly)
        )
        car = service.savings.add(
            SavingsProjectIn(
                name="Car",
                amount=Decimal("50"),
                frequency=Frequency.weekly,
                deduct_from_budget=False,
            )
        )
        assert trip.id != car.id

        service.savings.update(trip.model_copy(update={"amount": Decimal("250")}))
        assert service.savings.list()[0].amount == Decimal("250")

        service.savings.delete(f" {trip.id} ")
        assert [p.id for p in service.savings.list()] == [car.id]
        with pytest.raises(RecordNotFound):
            service.savings.delete(trip.id)


def test_profile_operations_are_persisted_and_broadcast() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        profiles: list = []
        service.subscribe(Collection.profile, profiles.append)
        original = service.profile.get_profile()

        service.profile.update_theme(ThemeColor.emerald)
        service.profile.add_viewer("partner-1")
        service.profile.add_viewer(" partner-1 ")
        service.profile.add_viewer("partner-2")

        profile = service.profile.get_profile()
        assert profile.id == original.id
        assert profile.theme == ThemeColor.emerald
        assert profile.viewers == ["partner-1", "partner-2"]
        # initial snapshot + theme + two distinct viewers
        assert len(profiles) == 4

        with pytest.raises(ValueError):
            service.profile.add_viewer("   ")

        service.profile.remove_viewer("partner-1")
        assert service.profile.get_profile().viewers == ["partner-2"]
        with pytest.raises(RecordNotFound):
            service.profile.remove_viewer("partner-1")


def test_import_commit_appends_valid_rows_in_one_write() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    content = (
        "Date,Description,Amount,Category\n"
        "2025-01-03,Groceries run,-45.10,groceries\n"
        ",Missing date,3,Other\n"
        "2025-01-04,,12,Unknown\n"
    )

    with Session(engine) as session:
        service = _service(session)
        notified: list[tuple] = []
        service.subscribe(Collection.transactions, notified.append)

        imported = ImportService(service.transactions).commit(content)

        assert imported == 2
        records = service.transactions.list()
        assert [t.amount for t in records] == [Decimal("45.10"), Decimal("12")]
        assert records[0].category == Category.groceries
        assert records[1].description == "Imported"
        assert records[1].category == Category.other
        assert len(notified) == 2


def test_import_reports_zero_when_persistence_fails(monkeypatch) -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)

        def fail_write(collection, records) -> None:
            raise StorePersistenceError("disk full")

        monkeypatch.setattr(service.store, "write", fail_write)
        imported = ImportService(service.transactions).commit(
            "Date,Amount\n2025-01-01,5\n2025-01-02,6\n"
        )

        assert imported == 0
        monkeypatch.undo()
        assert service.transactions.list() == []


def test_set_budget_converts_float_amounts_through_their_text() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = _service(session)
        service.budgets.set_budget("2025-01", Category.groceries, 0.1)

        assert service.budgets.get_month("2025-01").categories == {
            Category.groceries: Decimal("0.1")
        }


def _slow_reads(monkeypatch) -> None:
    original_read = RecordStore.read

    def slow_read(self, collection):
        records = original_read(self, collection)
        time.sleep(0.05)
        return records

    monkeypatch.setattr(RecordStore, "read", slow_read)


def _file_engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'duobudget.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    return engine


def test_concurrent_adds_from_separate_sessions_keep_every_record(tmp_path, monkeypatch) -> None:
    engine = _file_engine(tmp_path)
    bus = SubscriptionBus()
    _slow_reads(monkeypatch)

    def add(description: str) -> Transaction:
        with Session(engine) as session:
            service = DataService(RecordStore(session, seed_defaults=False), bus)
            return service.transactions.add(_txn_in(date(2025, 1, 1), "5", description))

    with ThreadPoolExecutor(max_workers=2) as pool:
        added = list(pool.map(add, ["Coffee", "Bagel"]))

    with Session(engine) as session:
        stored = RecordStore(session, seed_defaults=False).read(Collection.transactions)
        version = RecordStore(session, seed_defaults=False).version(Collection.transactions)

    assert sorted(t.description for t in stored) == ["Bagel", "Coffee"]
    assert {t.id for t in stored} == {t.id for t in added}
    assert version == 2


def test_concurrent_budget_upserts_keep_both_categories(tmp_path, monkeypatch) -> None:
    engine = _file_engine(tmp_path)
    bus = SubscriptionBus()
    _slow_reads(monkeypatch)

    def set_budget(category: Category) -> None:
        with Session(engine) as session:
            service = DataService(RecordStore(session, seed_defaults=False), bus)
            service.budgets.set_budget("2025-01", category, Decimal("100"))

    with ThreadPoolExecutor(max_workers=2) as pool:
        list(pool.map(set_budget, [Category.groceries, Category.housing]))

    with Session(engine) as session:
        budgets = DataService(RecordStore(session, seed_defaults=False), bus).budgets
        january = budgets.get_month("2025-01")
        months = [b.month for b in budgets.list()]

    assert months == ["2025-01"]
    assert set(january.categories) == {Category.groceries, Category.housing}

import pytest

from enums.alert_type import AlertDirection
from models.account import Position
from models.alert import Alert
from orchestrators.persistence_orchestrator import PersistenceOrchestrator
from repositories.account_repository import AccountRepository
from repositories.alert_repository import AlertRepository
from repositories.snapshot_repository import ACCOUNTS, SnapshotRepository

from tests.conftest import MINT_X


@pytest.fixture
def snapshots(tmp_path):
    return SnapshotRepository(str(tmp_path / "data" / "bot.db"))


def _populate(accounts, alerts):
    def _setup(acc):
        acc.wallet_address = MINT_X
        acc.onboarded = True
        acc.settings.slippage_bps = 250
        acc.positions[MINT_X] = Position(mint=MINT_X, symbol="TKX", amount=10, sol_spent=0.5, entry_price_native=2.0)
        acc.stats.total_trades = 3

    accounts.update(42, _setup)
    alerts.add(Alert(account_id=42, chat_id=42, mint=MINT_X, target_price=2.2, direction=AlertDirection.ABOVE))


async def test_state_survives_a_restart(snapshots, accounts, alerts):
    _populate(accounts, alerts)
    assert await PersistenceOrchestrator(snapshots, accounts, alerts).save()

    fresh_accounts, fresh_alerts = AccountRepository(), AlertRepository()
    PersistenceOrchestrator(snapshots, fresh_accounts, fresh_alerts).load()

    acc = fresh_accounts.get(42)
    assert acc.onboarded
    assert acc.settings.slippage_bps == 250
    assert acc.positions[MINT_X].amount == 10
    assert acc.stats.total_trades == 3
    assert acc.settings.referral_code == accounts.get(42).settings.referral_code
    assert fresh_alerts.all()[0].target_price == 2.2


def test_save_replaces_previous_snapshot(snapshots):
    snapshots.save(ACCOUNTS, {"1": {"id": 1}})
    snapshots.save(ACCOUNTS, {"2": {"id": 2}})

    assert snapshots.load(ACCOUNTS) == {"2": {"id": 2}}
    assert snapshots.updated_at(ACCOUNTS) is not None


def test_empty_store_starts_clean(snapshots, accounts, alerts):
    PersistenceOrchestrator(snapshots, accounts, alerts).load()

    assert accounts.items() == []
    assert len(alerts) == 0


def test_corrupt_account_is_dropped_on_restore(accounts):
    restored = accounts.restore({"1": {"id": 1}, "2": {"id": "no-es-un-id"}})

    assert restored == 1
    assert accounts.exists(1)


def test_write_errors_do_not_raise(snapshots, accounts, alerts, monkeypatch):
    def _fail(name, payload):
        raise OSError("disco lleno")

    monkeypatch.setattr(snapshots, "save", _fail)
    assert PersistenceOrchestrator(snapshots, accounts, alerts).save_sync() is False

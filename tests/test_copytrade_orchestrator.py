import pytest

from orchestrators.copytrade_orchestrator import CopyTradeOrchestrator, SeenSignatures, is_aggregator_trade

from tests.conftest import COPY_WALLET


@pytest.fixture
def follower(accounts, onboarded):
    accounts.update(onboarded.id, lambda acc: acc.settings.copy_wallets.append(COPY_WALLET))
    return onboarded


@pytest.fixture
def copytrade(accounts, solana, telegram):
    return CopyTradeOrchestrator(accounts, solana, telegram, lookback=5, seen_cap=100)


async def test_aggregator_trade_is_notified_once(copytrade, solana, telegram, follower):
    solana.signatures[COPY_WALLET] = ["sigA", "sigB"]
    solana.logs["sigA"] = ["Program JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4 invoke [1]"]
    solana.logs["sigB"] = ["Program 11111111111111111111111111111111 invoke [1]"]

    assert await copytrade.tick() == 1
    assert await copytrade.tick() == 0
    assert len(telegram.sent) == 1
    assert "sigA" in telegram.sent[0][1]


async def test_each_follower_is_notified(copytrade, accounts, solana, telegram, follower):
    def _follow(acc):
        acc.wallet_address = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
        acc.onboarded = True
        acc.chat_id = 2
        acc.settings.copy_wallets.append(COPY_WALLET)

    accounts.update(2, _follow)
    solana.signatures[COPY_WALLET] = ["sigA"]
    solana.logs["sigA"] = ["JUP swap"]

    assert await copytrade.tick() == 2
    assert {chat for chat, _, _ in telegram.sent} == {1, 2}


async def test_accounts_without_wallet_are_skipped(copytrade, accounts, solana):
    accounts.update(3, lambda acc: acc.settings.copy_wallets.append(COPY_WALLET))

    assert await copytrade.tick() == 0
    assert "get_signatures" not in solana.calls


async def test_rpc_failure_on_one_wallet_does_not_stop_the_tick(copytrade, solana, follower):
    async def _boom(address, limit):
        raise RuntimeError("rpc caído")

    solana.get_signatures = _boom
    assert await copytrade.tick() == 0


def test_seen_set_forgets_oldest_beyond_cap():
    seen = SeenSignatures(cap=2)
    for key in ("a", "b", "c"):
        seen.add(key)

    assert len(seen) == 2
    assert "a" not in seen
    assert "b" in seen and "c" in seen


def test_aggregator_classification():
    assert is_aggregator_trade(["Program log: JUP route"])
    assert not is_aggregator_trade(["Program log: transfer"])
    assert not is_aggregator_trade(None)

from __future__ import annotations

import itertools
from typing import Any, Dict, List, Optional, Tuple

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from controllers.conversation_controller import ConversationController
from controllers.ledger_controller import LedgerController
from controllers.menu_controller import MenuController
from controllers.trade_controller import TradeController
from models.token import SecurityReport, TokenInfo
from models.trade import RouteQuote
from repositories.account_repository import AccountRepository
from repositories.alert_repository import AlertRepository
from repositories.pending_repository import PendingRepository

MINT_X = "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr"
DEST = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
COPY_WALLET = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"


class FakeSolana:
    def __init__(self) -> None:
        self.sol_balances: Dict[str, float] = {}
        self.token_balances: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.signatures: Dict[str, List[str]] = {}
        self.logs: Dict[str, List[str]] = {}
        self.sent: List[bytes] = []
        self.confirm_error: Optional[Exception] = None
        self.calls: List[str] = []

    async def get_balance_sol(self, address: str) -> float:
        self.calls.append("get_balance_sol")
        return self.sol_balances.get(address, 0.0)

    async def get_token_balance(self, owner: str, mint: str) -> Optional[Dict[str, Any]]:
        self.calls.append("get_token_balance")
        return self.token_balances.get((owner, mint))

    async def get_token_balances(self, owner: str) -> List[Dict[str, Any]]:
        return [b for (o, _), b in self.token_balances.items() if o == owner]

    async def get_signatures(self, address: str, limit: int) -> List[str]:
        self.calls.append("get_signatures")
        return self.signatures.get(address, [])[:limit]

    async def get_transaction_logs(self, signature: str) -> Optional[List[str]]:
        self.calls.append("get_transaction_logs")
        return self.logs.get(signature)

    async def account_exists(self, address: str) -> bool:
        return True

    async def get_latest_blockhash(self) -> Hash:
        return Hash.default()

    async def send_raw_transaction(self, raw: bytes) -> str:
        self.calls.append("send_raw_transaction")
        self.sent.append(raw)
        return str(Signature.new_unique())

    async def confirm(self, signature: str) -> None:
        self.calls.append("confirm")
        if self.confirm_error is not None:
            raise self.confirm_error

    async def close(self) -> None:
        pass


class FakeJupiter:
    def __init__(self) -> None:
        self.out_amount = 1_000_000
        self.no_route = False
        self.quotes: List[Tuple[str, str, int, int]] = []

    async def get_quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> Optional[RouteQuote]:
        self.quotes.append((input_mint, output_mint, amount, slippage_bps))
        if self.no_route:
            return None
        return RouteQuote(input_mint=input_mint, output_mint=output_mint, in_amount=amount,
                          out_amount=self.out_amount)

    async def build_swap(self, quote: RouteQuote, user_public_key: str, priority_fee_lamports: int) -> Optional[bytes]:
        payer = Pubkey.from_string(user_public_key)
        msg = MessageV0.try_compile(payer, [], [], Hash.default())
        return bytes(VersionedTransaction.populate(msg, [Signature.default()]))


class FakeMarket:
    def __init__(self) -> None:
        self.infos: Dict[str, TokenInfo] = {}
        self.prices: Dict[str, float] = {}
        self.failing: set = set()

    async def get_token_info(self, mint: str) -> Optional[TokenInfo]:
        return self.infos.get(mint)

    async def get_price_native(self, mint: str) -> Optional[float]:
        if mint in self.failing:
            raise RuntimeError("dexscreener caído")
        return self.prices.get(mint)


class FakeSecurity:
    def __init__(self) -> None:
        self.report = SecurityReport(score=85, grade="SAFE", risks=[])

    async def scan(self, mint: str) -> SecurityReport:
        return self.report


class FakeTelegram:
    def __init__(self) -> None:
        self.sent: List[Tuple[int, str, Any]] = []
        self.edited: List[Tuple[int, int, str, Any]] = []
        self.deleted: List[Tuple[int, Optional[int]]] = []
        self._ids = itertools.count(100)

    async def send(self, chat_id: int, text: str, keyboard: Any = None, markdown: bool = True) -> int:
        self.sent.append((chat_id, text, keyboard))
        return next(self._ids)

    async def edit(self, chat_id: int, message_id: int, text: str, keyboard: Any = None) -> None:
        self.edited.append((chat_id, message_id, text, keyboard))

    async def delete_message(self, chat_id: int, message_id: Optional[int]) -> bool:
        self.deleted.append((chat_id, message_id))
        return True

    @property
    def texts(self) -> List[str]:
        return [t for _, t, _ in self.sent] + [t for _, _, t, _ in self.edited]

    @property
    def last(self) -> str:
        return self.sent[-1][1] if self.sent else ""


class PersistCounter:
    def __init__(self) -> None:
        self.calls = 0

    async def __call__(self) -> None:
        self.calls += 1


@pytest.fixture
def keypair() -> Keypair:
    return Keypair()


@pytest.fixture
def accounts() -> AccountRepository:
    return AccountRepository()


@pytest.fixture
def alerts() -> AlertRepository:
    return AlertRepository()


@pytest.fixture
def pending() -> PendingRepository:
    return PendingRepository()


@pytest.fixture
def solana() -> FakeSolana:
    return FakeSolana()


@pytest.fixture
def jupiter() -> FakeJupiter:
    return FakeJupiter()


@pytest.fixture
def market() -> FakeMarket:
    m = FakeMarket()
    m.infos[MINT_X] = TokenInfo(mint=MINT_X, name="Token X", symbol="TKX", price_native=2.0,
                                price_usd=300.0, liquidity_usd=50_000, dex_id="raydium")
    m.prices[MINT_X] = 2.0
    return m


@pytest.fixture
def security() -> FakeSecurity:
    return FakeSecurity()


@pytest.fixture
def telegram() -> FakeTelegram:
    return FakeTelegram()


@pytest.fixture
def persist() -> PersistCounter:
    return PersistCounter()


@pytest.fixture
def ledger(accounts, alerts) -> LedgerController:
    return LedgerController(accounts, alerts)


@pytest.fixture
def trades(solana, jupiter, market, ledger, alerts, persist) -> TradeController:
    return TradeController(solana, jupiter, market, ledger, alerts, persist=persist)


@pytest.fixture
def menus(solana, market, alerts) -> MenuController:
    return MenuController(solana, market, alerts, bot_username="testbot")


@pytest.fixture
def conversation(accounts, pending, alerts, trades, menus, telegram, solana, market, security,
                 persist) -> ConversationController:
    return ConversationController(
        accounts=accounts, pending=pending, alerts=alerts, trades=trades, menus=menus,
        telegram=telegram, solana=solana, market=market, security=security, persist=persist,
    )


@pytest.fixture
def onboarded(accounts, keypair, solana):
    """Cuenta 1 con wallet registrada y 10 SOL."""
    address = str(keypair.pubkey())

    def _register(acc):
        acc.wallet_address = address
        acc.onboarded = True
        acc.chat_id = 1
        return acc

    account = accounts.update(1, _register)
    solana.sol_balances[address] = 10.0
    return account

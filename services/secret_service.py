"""
Ephemeral signing material.

The user pastes a base58 keypair only to authorise one operation. The text
is copied into a ``ScopedSecret`` (a bytearray zeroed when its ``with`` block
ends) and turned into a ``Signer`` that lives only for that operation. Nothing
here talks to the network: a malformed or foreign key is rejected before any
quote or broadcast.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction, VersionedTransaction

from utils.errors import SecretMalformed, SecretMismatch
from utils.log_config import logger_manager

logger = logger_manager.setup_logger(__name__)


class ScopedSecret:
    """Mutable copy of the secret text, wiped on ``__exit__``."""

    __slots__ = ("_buf",)

    def __init__(self, text: str) -> None:
        self._buf = bytearray((text or "").strip().encode("utf-8"))

    def __enter__(self) -> "ScopedSecret":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.zeroize()

    def reveal(self) -> str:
        return self._buf.decode("utf-8")

    def zeroize(self) -> None:
        for i in range(len(self._buf)):
            self._buf[i] = 0
        self._buf = bytearray()

    @property
    def wiped(self) -> bool:
        return not any(self._buf)

    def __len__(self) -> int:
        return len(self._buf)

    def __repr__(self) -> str:
        return "ScopedSecret(****)"

    __str__ = __repr__


class Signer:
    """Holds a keypair for the duration of one trade."""

    def __init__(self, keypair: Keypair) -> None:
        self._keypair: Optional[Keypair] = keypair

    def _kp(self) -> Keypair:
        if self._keypair is None:
            raise SecretMalformed("signer ya descartado")
        return self._keypair

    @property
    def pubkey(self) -> Pubkey:
        return self._kp().pubkey()

    @property
    def public_address(self) -> str:
        return str(self.pubkey)

    def sign_versioned(self, raw: bytes) -> VersionedTransaction:
        """Sign a serialized versioned transaction built by the aggregator."""
        unsigned = VersionedTransaction.from_bytes(raw)
        return VersionedTransaction(unsigned.message, [self._kp()])

    def sign_instructions(self, instructions: Sequence[Instruction], blockhash: Hash) -> Transaction:
        msg = Message.new_with_blockhash(list(instructions), self.pubkey, blockhash)
        return Transaction([self._kp()], msg, blockhash)

    def wipe(self) -> None:
        self._keypair = None

    def __repr__(self) -> str:
        return f"Signer({self.public_address if self._keypair else 'wiped'})"


def _keypair_from_text(text: str) -> Keypair:
    text = text.strip()
    try:
        if text.startswith("["):
            # formato JSON de solana-keygen
            values: List[int] = [int(v) for v in text.strip("[]").split(",") if v.strip()]
            return Keypair.from_bytes(bytes(values))
        return Keypair.from_base58_string(text)
    except Exception as e:
        raise SecretMalformed(type(e).__name__) from None


def acquire_signer(wallet_address: Optional[str], secret: ScopedSecret) -> Signer:
    """Decode ``secret`` and check it belongs to ``wallet_address``.

    :raises SecretMalformed: the text is not a keypair.
    :raises SecretMismatch: the keypair derives another address.
    """
    if len(secret) == 0:
        raise SecretMalformed("vacía")
    keypair = _keypair_from_text(secret.reveal())
    derived = str(keypair.pubkey())
    if not wallet_address or derived != wallet_address:
        logger.warning(f"🔐 clave no coincide con la wallet registrada ({(wallet_address or '')[:8]}...)")
        raise SecretMismatch("dirección distinta")
    return Signer(keypair)


def generate_wallet() -> Tuple[str, str]:
    """New keypair for onboarding: (address, base58 secret). The secret is shown once and dropped."""
    kp = Keypair()
    return str(kp.pubkey()), str(kp)

"""
Ledger Commitment.

Responsibilities:
- Anchor a settled winner on an EVM ledger: the SHA-256 digest of the
  canonical winner payload goes into a zero-value self-send transaction,
  then the receipt is awaited.
- Report the attempt as confirmed, pending, simulated or failed.

Non-Responsibilities:
- No persistence.
- No retry of earlier attempts.

Invariant:
commit() never raises. Missing credentials give a simulated receipt and
any error during key parsing, submission or receipt retrieval gives a
failed receipt carrying the error text.
"""

import hashlib
import json
import secrets
import string
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from eth_account import Account
from web3 import Web3

from ..config import SEPOLIA_CHAIN_ID, Settings
from ..logger import get_logger
from ..retry import is_transient_error
from .errors import LedgerFailure
from .models import LedgerReceipt

logger = get_logger()

APP_NAME = "VoteChain"
PAYLOAD_TYPE = "VOTECHAIN_WINNER"
ANCHOR_GAS = 30_000

EXPLORERS = {
    1: "https://etherscan.io/tx/",
    11155111: "https://sepolia.etherscan.io/tx/",
    17000: "https://holesky.etherscan.io/tx/",
}

_ID_ALPHABET = string.digits + string.ascii_lowercase


def _local_attempt_id(prefix: str) -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(6))
    return f"{prefix}-{int(time.time() * 1000)}-{suffix}"


def winner_payload(
    room_id: str,
    winner_id: str,
    candidate_id: str,
    final_score: int,
    timestamp: datetime,
) -> Dict[str, Any]:
    return {
        "type": PAYLOAD_TYPE,
        "roomId": room_id,
        "winnerId": winner_id,
        "candidateId": candidate_id,
        "finalScore": final_score,
        "timestamp": timestamp.isoformat(),
        "app": APP_NAME,
    }


def payload_digest(payload: Dict[str, Any]) -> str:
    """SHA-256 of the payload in canonical form (sorted keys, UTF-8)."""
    canonical = json.dumps(payload, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return hashlib.sha256(canonical).hexdigest()


def _from_hex(value: str):
    return Account.from_key(value if value.startswith("0x") else "0x" + value)


def _from_mnemonic(value: str):
    Account.enable_unaudited_hdwallet_features()
    return Account.from_mnemonic(" ".join(value.split()))


KEY_DECODERS: List[Tuple[str, Callable]] = [
    ("hex", _from_hex),
    ("mnemonic", _from_mnemonic),
]


def parse_private_key(value: str):
    """
    Load the operator account from a hex private key or a BIP-39 mnemonic.

    Raises:
        LedgerFailure: If no decoder accepts the value
    """
    value = value.strip()
    errors = []
    for name, decoder in KEY_DECODERS:
        try:
            account = decoder(value)
        except Exception as e:
            errors.append(f"{name}: {e}")
            continue
        logger.debug("Ledger key parsed", encoding=name)
        return account
    raise LedgerFailure("Unrecognized private key encoding (" + "; ".join(errors) + ")")


def format_transaction_id(chain_id: int, tx_hash: str) -> str:
    return f"eip155:{chain_id}:{tx_hash}"


class LedgerCommitter:
    """Best-effort writer of winner records to the ledger."""

    def __init__(
        self,
        rpc_url: Optional[str],
        private_key: Optional[str],
        chain_id: int = SEPOLIA_CHAIN_ID,
        network: str = "sepolia",
        timeout: float = 15.0,
        receipt_timeout: float = 120.0,
        web3: Optional[Any] = None,
    ):
        self.rpc_url = rpc_url
        self.private_key = private_key
        self.chain_id = chain_id
        self.network = network
        self.timeout = timeout
        self.receipt_timeout = receipt_timeout
        self._web3 = web3

    @classmethod
    def from_settings(cls, settings: Settings) -> "LedgerCommitter":
        return cls(
            rpc_url=settings.ledger_rpc_url,
            private_key=settings.ledger_private_key,
            chain_id=settings.ledger_chain_id,
            network=settings.ledger_network,
            timeout=settings.ledger_timeout,
            receipt_timeout=settings.ledger_receipt_timeout,
        )

    @property
    def configured(self) -> bool:
        return bool(self.rpc_url and self.private_key)

    def _connect(self):
        if self._web3 is not None:
            return self._web3
        return Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.timeout}))

    def _send(self, w3, payload: Dict[str, Any]) -> str:
        account = parse_private_key(self.private_key)

        tx = {
            "to": account.address,  # self-send, 0 value
            "value": 0,
            "gas": ANCHOR_GAS,
            "gasPrice": w3.eth.gas_price,
            "nonce": w3.eth.get_transaction_count(account.address),
            "chainId": self.chain_id,
            "data": bytes.fromhex(payload_digest(payload)),
        }
        signed = account.sign_transaction(tx)
        tx_hash = Web3.to_hex(w3.eth.send_raw_transaction(signed.raw_transaction))
        logger.info("Ledger transaction sent", tx_hash=tx_hash, network=self.network)
        return tx_hash

    def _explorer_url(self, tx_hash: str) -> Optional[str]:
        explorer = EXPLORERS.get(self.chain_id)
        return f"{explorer}{tx_hash}" if explorer else None

    def commit(
        self,
        room_id: str,
        winner_id: str,
        candidate_id: str,
        final_score: int,
        timestamp: datetime,
    ) -> LedgerReceipt:
        """
        Anchor a winner record.

        Args:
            room_id: Settled room
            winner_id: Persisted winner row id
            candidate_id: Winning candidate
            final_score: Winning score
            timestamp: Settlement time

        Returns:
            LedgerReceipt; never raises
        """
        if not self.configured:
            logger.info("Ledger credentials not configured, using simulation", room_id=room_id)
            return LedgerReceipt(
                transaction_id=_local_attempt_id("simulated"),
                network=self.network,
                status="simulated",
                timestamp=timestamp,
            )

        payload = winner_payload(room_id, winner_id, candidate_id, final_score, timestamp)
        try:
            w3 = self._connect()
            tx_hash = self._send(w3, payload)
        except Exception as e:
            logger.error("Ledger commit failed", room_id=room_id, error=str(e), transient=is_transient_error(e))
            return LedgerReceipt(
                transaction_id=_local_attempt_id("failed"),
                network=self.network,
                status="failed",
                timestamp=timestamp,
                error=str(e) or type(e).__name__,
            )

        try:
            receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        except Exception as e:
            # Sent but unconfirmed: keep the real tx id
            logger.error("Ledger receipt not received", room_id=room_id, tx_hash=tx_hash, error=str(e),
                         transient=is_transient_error(e))
            return LedgerReceipt(
                transaction_id=format_transaction_id(self.chain_id, tx_hash),
                network=self.network,
                status="failed",
                timestamp=timestamp,
                explorer_url=self._explorer_url(tx_hash),
                error=str(e) or type(e).__name__,
            )

        status = "confirmed" if receipt.get("status") == 1 else "pending"
        logger.info(
            "Ledger receipt received",
            tx_hash=tx_hash,
            status=status,
            block=receipt.get("blockNumber"),
        )
        return LedgerReceipt(
            transaction_id=format_transaction_id(self.chain_id, tx_hash),
            network=self.network,
            status=status,
            timestamp=timestamp,
            explorer_url=self._explorer_url(tx_hash),
        )

"""
Pytest configuration and shared fixtures.
"""

import os

# Keep test runs from writing logs/ into the working tree
os.environ.setdefault("VOTECHAIN_LOG_TO_FILE", "0")

import json
from typing import Any, Dict, List, Optional

import pytest

from votechain.database import init_database
from votechain.settlement.errors import OracleUnavailable
from votechain.settlement.ledger import LedgerCommitter
from votechain.settlement.models import OracleScores, ScoreEntry
from votechain.settlement.orchestrator import SettlementOrchestrator
from votechain.storage import SettlementStore

OWNER_ID = "owner-1"

# Well-known throwaway key from the eth-account documentation
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
TEST_MNEMONIC = "test test test test test test test test test test test junk"
TEST_MNEMONIC_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class FakeOracle:
    """Stands in for OracleClient; returns a canned result or raises."""

    def __init__(self, result=None, error: Optional[Exception] = None, before_return=None):
        self.result = result
        self.error = error
        self.before_return = before_return
        self.calls: List[Dict[str, Any]] = []

    def score(self, criteria, bundles):
        self.calls.append({"criteria": criteria, "bundles": list(bundles)})
        if self.error is not None:
            raise self.error
        if self.before_return is not None:
            self.before_return(bundles)
        return self.result


class FakeEth:
    """Minimal web3.eth replacement used by ledger tests."""

    gas_price = 2_000_000_000

    def __init__(self, receipt: Optional[Dict[str, Any]] = None, send_error: Optional[Exception] = None,
                 receipt_error: Optional[Exception] = None):
        self.receipt = receipt if receipt is not None else {"status": 1, "blockNumber": 42}
        self.send_error = send_error
        self.receipt_error = receipt_error
        self.sent: List[bytes] = []

    def get_transaction_count(self, address):
        return 0

    def send_raw_transaction(self, raw):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(raw)
        return b"\xab" * 32

    def wait_for_transaction_receipt(self, tx_hash, timeout=120):
        if self.receipt_error is not None:
            raise self.receipt_error
        return self.receipt


class FakeWeb3:
    def __init__(self, eth: FakeEth):
        self.eth = eth


def oracle_scores(*pairs) -> OracleScores:
    """Build oracle output from (candidate_id, score[, reasoning]) tuples."""
    entries = []
    for pair in pairs:
        candidate_id, score = pair[0], pair[1]
        reasoning = pair[2] if len(pair) > 2 else f"scored {score}"
        entries.append(ScoreEntry(candidate_id, score, reasoning))
    return OracleScores(entries=tuple(entries))


def completion(scores: List[Dict[str, Any]], as_tool: bool = True) -> Dict[str, Any]:
    """Chat completion body as returned by an OpenAI-compatible endpoint."""
    if as_tool:
        message = {
            "role": "assistant",
            "content": None,
            "tool_calls": [{
                "id": "call_1",
                "type": "function",
                "function": {"name": "submit_scores", "arguments": json.dumps({"scores": scores})},
            }],
        }
    else:
        message = {"role": "assistant", "content": "Here you go:\n" + json.dumps({"scores": scores})}
    return {"choices": [{"index": 0, "message": message}]}


@pytest.fixture
def db_path(tmp_path):
    """Initialized temporary database."""
    path = tmp_path / "votechain.db"
    init_database(path)
    return path


@pytest.fixture
def store(db_path):
    s = SettlementStore(db_path)
    yield s
    s.close()


@pytest.fixture
def seeded_room(store) -> Dict[str, str]:
    """Room with Alpha (2 votes, 1 evaluation) and Beta (no votes, no evaluations)."""
    room = store.create_room(
        owner_id=OWNER_ID,
        name="Best Hackathon Project",
        evaluation_criteria="Originality and execution",
        status="voting_ended",
    )
    alpha = store.add_candidate(room["id"], "Alpha", description="Realtime voting app")
    beta = store.add_candidate(room["id"], "Beta")
    store.add_vote(alpha["id"], "voter-1")
    store.add_vote(alpha["id"], "voter-2")
    store.upsert_evaluation(alpha["id"], "voter-1", "great")
    return {"room_id": room["id"], "alpha": alpha["id"], "beta": beta["id"]}


@pytest.fixture
def simulated_ledger() -> LedgerCommitter:
    """Ledger without credentials; always simulates."""
    return LedgerCommitter(rpc_url=None, private_key=None)


@pytest.fixture
def make_orchestrator(store, simulated_ledger):
    def _make(oracle, ledger=None):
        return SettlementOrchestrator(store=store, oracle=oracle, ledger=ledger or simulated_ledger)
    return _make


@pytest.fixture
def unavailable_oracle() -> FakeOracle:
    return FakeOracle(error=OracleUnavailable("AI evaluation failed: connection refused"))

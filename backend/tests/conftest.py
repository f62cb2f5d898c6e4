"""
Pytest fixtures for mintgate backend tests.

Provides the application, a per-test clean database, and in-memory stand-ins
for the ledger reader and the buyer's wallet.
"""

import pytest

from mintgate import create_app
from mintgate.extensions import db
from mintgate.services import merkle_service
from mintgate.services.abi_codec import ZERO_ROOT
from mintgate.services.chain_service import ChainTimeoutError, ContractRevertError, OnchainSaleRecord
from mintgate.services.wallet_service import (
    InsufficientBalanceError,
    TransactionRevertedError,
    UserRejectedError,
)


CONTRACT = "0x" + "c0" * 20
ADMIN = "0x" + "ad" * 20
USDC = "0x" + "0d" * 20


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'CONTRACT_ADDRESS': CONTRACT,
        'ADMIN_ADDRESSES': [ADMIN],
        'NATIVE_CURRENCY_SYMBOL': 'POL',
        'DEFAULT_PUBLIC_WALLET_CAP': 10,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        merkle_service.invalidate()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def make_record(item_id=1, **overrides) -> OnchainSaleRecord:
    values = dict(
        item_id=item_id,
        condition_id=0,
        price=10**18,
        currency_address="0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee",
        per_wallet_cap=None,
        supply_cap=None,
        supply_claimed=0,
        membership_root=ZERO_ROOT,
        window_start=None,
        window_end=None,
    )
    values.update(overrides)
    return OnchainSaleRecord(**values)


class FakeRpc:
    def __init__(self, fail=False):
        self.fail = fail

    def request(self, method, params):
        if self.fail:
            raise ChainTimeoutError(f"{method} timed out")
        return "0x10"


class FakeChainReader:
    """In-memory ledger: records per item, claimed counts per wallet, token allowances."""

    def __init__(self):
        self.contract_address = CONTRACT
        self.records = {}
        self.claimed = {}
        self.allowances = {}
        self.next_id = 0
        self.token_decimals = {}
        self.fail = False
        self.fail_allowance = False
        self.rpc = FakeRpc()

    def _check(self):
        if self.fail:
            raise ChainTimeoutError("ledger read timed out")

    def read_sale_record(self, item_id):
        self._check()
        return self.records.get(item_id)

    def supply_claimed_by_wallet(self, item_id, condition_id, wallet):
        self._check()
        return self.claimed.get((item_id, wallet.lower()), 0)

    def allowance(self, token, owner, spender):
        if self.fail or self.fail_allowance:
            raise ChainTimeoutError("allowance read timed out")
        return self.allowances.get((token.lower(), owner.lower()), 0)

    def next_token_id(self):
        self._check()
        return self.next_id

    def decimals(self, token):
        self._check()
        if token.lower() not in self.token_decimals:
            raise ContractRevertError(3, "execution reverted")
        return self.token_decimals[token.lower()]


class FakeWallet:
    """
    Scripted wallet. `outcomes` maps a call name to "revert", "reject",
    "broke" (insufficient balance) or "ok"; unknown names succeed.
    """

    def __init__(self, address, outcomes=None):
        self.address = address
        self.outcomes = dict(outcomes or {})
        self.sent = []
        self._pending = {}

    def send_transaction(self, call):
        self.sent.append(call)
        outcome = self.outcomes.get(call.name, "ok")
        if outcome == "reject":
            raise UserRejectedError("User rejected the request.")
        if outcome == "broke":
            raise InsufficientBalanceError("insufficient funds for gas * price + value")
        tx_hash = "0x" + f"{len(self.sent):064x}"
        self._pending[tx_hash] = outcome
        return tx_hash

    def wait_for_receipt(self, tx_hash):
        if self._pending.get(tx_hash) == "revert":
            raise TransactionRevertedError(f"transaction {tx_hash} reverted")
        return {"transactionHash": tx_hash, "status": "0x1"}

    @property
    def sent_names(self):
        return [c.name for c in self.sent]


@pytest.fixture(scope='function')
def chain(app):
    """Install an in-memory ledger reader for the duration of a test."""
    reader = FakeChainReader()
    app.extensions["mintgate.chain_reader"] = reader
    yield reader
    app.extensions.pop("mintgate.chain_reader", None)


@pytest.fixture(scope='function')
def wallets(app):
    """Install a wallet factory; tests script outcomes via wallets.outcomes."""
    class Factory:
        def __init__(self):
            self.outcomes = {}
            self.created = []

        def __call__(self, address):
            wallet = FakeWallet(address, self.outcomes)
            self.created.append(wallet)
            return wallet

    factory = Factory()
    app.extensions["mintgate.wallet_factory"] = factory
    yield factory
    app.extensions.pop("mintgate.wallet_factory", None)


def admin_headers() -> dict:
    """Helper to create operator headers."""
    return {'X-Admin-Address': ADMIN}

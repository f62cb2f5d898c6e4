"""
On-chain sale parameter reader.

Reads claim conditions from the drop contract over Ethereum JSON-RPC with a
bounded timeout. Every successful read is stored as a ChainSnapshot so that a
later timeout can fall back to the last known record (flagged stale) instead
of blocking the eligibility decision.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import asdict, dataclass
from datetime import datetime

import httpx
from flask import current_app

from ..extensions import db
from ..models import ChainSnapshot
from mintgate.time_utils import from_unix_seconds, parse_iso_datetime, to_utc_z, utcnow
from .abi_codec import AbiError, ZERO_ROOT, decode_result, encode_call, normalize_address


logger = logging.getLogger(__name__)

# Contracts use uint256 max (or anything close) to mean "no limit"
UNLIMITED_THRESHOLD = 2**255

CLAIM_CONDITION_TUPLE = "(uint256,uint256,uint256,uint256,bytes32,uint256,address,string)"

SIG_CLAIM_CONDITION = "claimCondition(uint256)"
SIG_ACTIVE_CONDITION_ID = "getActiveClaimConditionId(uint256)"
SIG_CONDITION_BY_ID = "getClaimConditionById(uint256,uint256)"
SIG_CLAIMED_BY_WALLET = "getSupplyClaimedByWallet(uint256,uint256,address)"
SIG_ALLOWANCE = "allowance(address,address)"


class ChainReadError(RuntimeError):
    """Transport or decoding failure while reading the ledger."""


class ChainTimeoutError(ChainReadError):
    pass


class RpcError(ChainReadError):
    """JSON-RPC error object returned by the node."""

    def __init__(self, code: int | None, message: str, data=None):
        super().__init__(message)
        self.code = code
        self.data = data


class ContractRevertError(RpcError):
    pass


def _is_revert(code: int | None, message: str) -> bool:
    return code == 3 or "revert" in (message or "").lower()


class RpcClient:
    """Thin synchronous JSON-RPC 2.0 client over httpx."""

    def __init__(self, url: str, *, timeout: float = 5.0, transport: httpx.BaseTransport | None = None):
        self.url = url
        self._ids = itertools.count(1)
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def request(self, method: str, params: list):
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = self._client.post(self.url, json=payload)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as exc:
            raise ChainTimeoutError(f"{method} timed out") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise ChainReadError(f"{method} failed: {exc}") from exc

        error = body.get("error")
        if error:
            code = error.get("code")
            message = error.get("message") or "RPC error"
            if _is_revert(code, message):
                raise ContractRevertError(code, message, error.get("data"))
            raise RpcError(code, message, error.get("data"))
        return body.get("result")

    def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return self.request("eth_call", [{"to": to, "data": data}, block])

    def close(self) -> None:
        self._client.close()


@dataclass(frozen=True)
class OnchainSaleRecord:
    item_id: int
    condition_id: int
    price: int
    currency_address: str
    per_wallet_cap: int | None
    supply_cap: int | None
    supply_claimed: int
    membership_root: str
    window_start: datetime | None
    window_end: datetime | None
    name: str | None = None

    def to_json(self) -> dict:
        data = asdict(self)
        # uint256 values can exceed JSON number precision in other consumers
        data["price"] = str(self.price)
        data["window_start"] = to_utc_z(self.window_start)
        data["window_end"] = to_utc_z(self.window_end)
        return data

    @classmethod
    def from_json(cls, data: dict) -> "OnchainSaleRecord":
        return cls(
            item_id=int(data["item_id"]),
            condition_id=int(data.get("condition_id", 0)),
            price=int(data["price"]),
            currency_address=data["currency_address"],
            per_wallet_cap=data.get("per_wallet_cap"),
            supply_cap=data.get("supply_cap"),
            supply_claimed=int(data.get("supply_claimed", 0)),
            membership_root=data.get("membership_root", ZERO_ROOT),
            window_start=parse_iso_datetime(data.get("window_start")),
            window_end=parse_iso_datetime(data.get("window_end")),
            name=data.get("name"),
        )


def _limit(value: int) -> int | None:
    return None if value >= UNLIMITED_THRESHOLD else value


class ChainReader:
    """Typed read surface over the drop contract."""

    def __init__(self, rpc: RpcClient, contract_address: str):
        self.rpc = rpc
        self.contract_address = normalize_address(contract_address)

    def _call(self, signature: str, args: list, returns: list[str], to: str | None = None) -> list:
        raw = self.rpc.eth_call(to or self.contract_address, encode_call(signature, args))
        try:
            return decode_result(returns, raw)
        except AbiError as exc:
            raise ChainReadError(f"{signature}: {exc}") from exc

    def _condition(self, item_id: int, condition_id: int) -> list:
        (condition,) = self._call(SIG_CONDITION_BY_ID, [item_id, condition_id], [CLAIM_CONDITION_TUPLE])
        return condition

    def read_sale_record(self, item_id: int) -> OnchainSaleRecord | None:
        """Active (or first upcoming) claim condition; None when the item has none."""
        try:
            start_id, count = self._call(SIG_CLAIM_CONDITION, [item_id], ["uint256", "uint256"])
        except ContractRevertError:
            return None
        if count == 0:
            return None

        try:
            (active_id,) = self._call(SIG_ACTIVE_CONDITION_ID, [item_id], ["uint256"])
        except ContractRevertError:
            # No phase has started yet; report the first one
            active_id = start_id

        start_ts, max_supply, claimed, wallet_limit, root, price, currency, _meta = self._condition(item_id, active_id)

        window_end = None
        if active_id + 1 < start_id + count:
            next_condition = self._condition(item_id, active_id + 1)
            window_end = from_unix_seconds(next_condition[0])

        return OnchainSaleRecord(
            item_id=item_id,
            condition_id=active_id,
            price=price,
            currency_address=normalize_address(currency),
            per_wallet_cap=_limit(wallet_limit),
            supply_cap=_limit(max_supply),
            supply_claimed=claimed,
            membership_root=root.lower(),
            window_start=from_unix_seconds(start_ts),
            window_end=window_end,
        )

    def supply_claimed_by_wallet(self, item_id: int, condition_id: int, wallet: str) -> int:
        (claimed,) = self._call(
            SIG_CLAIMED_BY_WALLET, [item_id, condition_id, normalize_address(wallet)], ["uint256"]
        )
        return claimed

    def allowance(self, token: str, owner: str, spender: str) -> int:
        (value,) = self._call(
            SIG_ALLOWANCE,
            [normalize_address(owner), normalize_address(spender)],
            ["uint256"],
            to=normalize_address(token),
        )
        return value

    def next_token_id(self) -> int:
        (value,) = self._call("nextTokenIdToMint()", [], ["uint256"])
        return value

    def decimals(self, token: str) -> int:
        (value,) = self._call("decimals()", [], ["uint8"], to=normalize_address(token))
        return value


def get_reader() -> ChainReader:
    """Reader bound to the app config; tests may install one in app.extensions."""
    reader = current_app.extensions.get("mintgate.chain_reader")
    if reader is None:
        contract = current_app.config.get("CONTRACT_ADDRESS")
        if not contract:
            raise ChainReadError("CONTRACT_ADDRESS is not configured")
        rpc = RpcClient(
            current_app.config["CHAIN_RPC_URL"],
            timeout=current_app.config.get("CHAIN_READ_TIMEOUT_SECONDS", 5.0),
        )
        reader = ChainReader(rpc, contract)
        current_app.extensions["mintgate.chain_reader"] = reader
    return reader


@dataclass(frozen=True)
class ChainRead:
    record: OnchainSaleRecord | None
    stale: bool
    fetched_at: datetime | None
    error: str | None = None


def _store_snapshot(item_id: int, record: OnchainSaleRecord | None, fetched_at: datetime) -> None:
    snapshot = db.session.query(ChainSnapshot).filter_by(item_id=item_id).first()
    if snapshot is None:
        snapshot = ChainSnapshot(item_id=item_id)
        db.session.add(snapshot)
    snapshot.record_json = record.to_json() if record else None
    snapshot.fetched_at = fetched_at
    db.session.commit()


def load_snapshot(item_id: int) -> ChainRead | None:
    snapshot = db.session.query(ChainSnapshot).filter_by(item_id=item_id).first()
    if snapshot is None:
        return None
    record = OnchainSaleRecord.from_json(snapshot.record_json) if snapshot.record_json else None
    return ChainRead(record=record, stale=True, fetched_at=snapshot.fetched_at)


def fetch_sale_record(item_id: int) -> ChainRead:
    """
    Read the item's ledger record, falling back to the last snapshot on any
    transport failure. Never raises ChainReadError.
    """
    try:
        record = get_reader().read_sale_record(item_id)
    except ChainReadError as exc:
        logger.warning("Ledger read for item %s failed, using last snapshot: %s", item_id, exc)
        cached = load_snapshot(item_id)
        if cached is None:
            return ChainRead(record=None, stale=True, fetched_at=None, error=str(exc))
        return ChainRead(record=cached.record, stale=True, fetched_at=cached.fetched_at, error=str(exc))

    fetched_at = utcnow()
    _store_snapshot(item_id, record, fetched_at)
    return ChainRead(record=record, stale=False, fetched_at=fetched_at)


def wallet_claimed(item_id: int, wallet: str, record: OnchainSaleRecord | None) -> int | None:
    """Units the wallet already claimed in the active phase; None when unreadable."""
    if record is None:
        return None
    try:
        return get_reader().supply_claimed_by_wallet(item_id, record.condition_id, wallet)
    except ChainReadError as exc:
        logger.warning("Claimed-by-wallet read for item %s failed: %s", item_id, exc)
        return None

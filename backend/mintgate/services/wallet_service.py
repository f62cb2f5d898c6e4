# Overview: Transaction submission through the buyer's wallet; classifies wallet and ledger failures.

from __future__ import annotations

import logging
import time
from typing import Protocol

from flask import current_app

from .abi_codec import normalize_address
from .chain_service import ChainReadError, ContractRevertError, RpcClient, RpcError
from .purchase_strategies import CallDescriptor


logger = logging.getLogger(__name__)

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001


class WalletError(RuntimeError):
    """Base class for failures while submitting a transaction."""


class UserRejectedError(WalletError):
    pass


class InsufficientBalanceError(WalletError):
    pass


class TransactionRevertedError(WalletError):
    pass


class WalletTransportError(WalletError):
    pass


class Wallet(Protocol):
    address: str

    def send_transaction(self, call: CallDescriptor) -> str:
        """Submit the call; returns the transaction hash."""

    def wait_for_receipt(self, tx_hash: str) -> dict:
        """Block until the transaction is mined; raises TransactionRevertedError on status 0."""


def classify_rpc_error(exc: ChainReadError) -> WalletError:
    if isinstance(exc, RpcError) and exc.code == USER_REJECTED_CODE:
        return UserRejectedError(str(exc))
    message = str(exc).lower()
    if "insufficient funds" in message or "insufficient balance" in message:
        return InsufficientBalanceError(str(exc))
    if isinstance(exc, ContractRevertError):
        return TransactionRevertedError(str(exc))
    if isinstance(exc, RpcError):
        # Node-side rejection of this particular call (bad selector, gas estimation)
        return TransactionRevertedError(str(exc))
    return WalletTransportError(str(exc))


class RpcWallet:
    """
    Wallet backed by a JSON-RPC signer (an unlocked node account or a
    signing proxy that prompts the holder and answers 4001 on refusal).
    """

    def __init__(self, address: str, rpc: RpcClient, *, receipt_timeout: float = 120.0, poll_interval: float = 2.0):
        self.address = normalize_address(address)
        self.rpc = rpc
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval

    def _tx(self, call: CallDescriptor) -> dict:
        return {"from": self.address, "to": call.to, "data": call.data, "value": hex(call.value)}

    def send_transaction(self, call: CallDescriptor) -> str:
        tx = self._tx(call)
        try:
            # Estimation surfaces reverts before the holder is prompted
            self.rpc.request("eth_estimateGas", [tx])
            tx_hash = self.rpc.request("eth_sendTransaction", [tx])
        except ChainReadError as exc:
            raise classify_rpc_error(exc) from exc
        logger.info("Submitted %s from %s: %s", call.name, self.address, tx_hash)
        return tx_hash

    def wait_for_receipt(self, tx_hash: str) -> dict:
        deadline = time.monotonic() + self.receipt_timeout
        while True:
            try:
                receipt = self.rpc.request("eth_getTransactionReceipt", [tx_hash])
            except ChainReadError as exc:
                raise WalletTransportError(str(exc)) from exc
            if receipt is not None:
                if int(receipt.get("status", "0x0"), 16) != 1:
                    raise TransactionRevertedError(f"transaction {tx_hash} reverted")
                return receipt
            if time.monotonic() >= deadline:
                raise WalletTransportError(f"no receipt for {tx_hash} after {self.receipt_timeout}s")
            time.sleep(self.poll_interval)


def get_wallet(address: str) -> Wallet:
    """Wallet for the given holder; tests may install a factory in app.extensions."""
    factory = current_app.extensions.get("mintgate.wallet_factory")
    if factory is not None:
        return factory(address)
    # Signing prompts wait on the holder, so the read timeout does not apply
    rpc = RpcClient(
        current_app.config["CHAIN_RPC_URL"],
        timeout=current_app.config.get("RECEIPT_TIMEOUT_SECONDS", 120.0),
    )
    return RpcWallet(
        address,
        rpc,
        receipt_timeout=current_app.config.get("RECEIPT_TIMEOUT_SECONDS", 120.0),
        poll_interval=current_app.config.get("RECEIPT_POLL_SECONDS", 2.0),
    )

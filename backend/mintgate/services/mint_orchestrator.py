"""
Mint orchestration.

Runs one purchase as a small state machine:

    idle -> validating -> (approving) -> minting -> succeeded | failed

Validation re-derives the sale state and the buyer's decision, so a price or
window change between the eligibility query and the purchase is caught here.
A price increase on the ledger must be confirmed by the caller before any
approval is broadcast. Payment-token approvals are only requested when the
current allowance is short. Purchase strategies are tried in order; a revert
moves on to the next one, a wallet rejection ends the run.

Nothing is persisted unless the ledger confirms the purchase. A confirmed
purchase always ends in `succeeded`; if the local ledger write fails the
outcome carries `ledger_recorded=False` so the counter can be corrected.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from flask import current_app

from ..extensions import db
from . import chain_service, eligibility_service, merkle_service, supply_service
from .chain_service import ChainReadError
from .concurrency import InFlightRegistry, MintInProgressError, in_flight
from .currency_service import NATIVE_PLACEHOLDER
from .purchase_strategies import DEFAULT_STRATEGIES, PurchaseContext, Strategy, approve_call
from .wallet_service import (
    InsufficientBalanceError,
    TransactionRevertedError,
    UserRejectedError,
    Wallet,
    WalletError,
)


logger = logging.getLogger(__name__)


STATE_IDLE = "idle"
STATE_VALIDATING = "validating"
STATE_APPROVING = "approving"
STATE_MINTING = "minting"
STATE_SUCCEEDED = "succeeded"
STATE_FAILED = "failed"

BUSY_STATES = {STATE_APPROVING, STATE_MINTING}

FAIL_INVALID_QUANTITY = "invalid-quantity"
FAIL_WALLET_CAP_REACHED = eligibility_service.DENY_WALLET_CAP_REACHED
FAIL_PRICE_CONFIRMATION = "price-confirmation-required"
FAIL_INSUFFICIENT_SUPPLY = "insufficient-supply"
FAIL_APPROVAL = "approval-failed"
FAIL_ALL_REVERTED = "all-candidates-reverted"
FAIL_USER_REJECTED = "user-rejected"
FAIL_INSUFFICIENT_BALANCE = "insufficient-balance"
FAIL_TRANSPORT = "transport-error"
FAIL_NOT_CONFIGURED = "ledger-not-configured"


@dataclass
class Attempt:
    strategy: str
    status: str
    error: str | None = None
    tx_hash: str | None = None

    def to_dict(self) -> dict:
        return {
            "strategy": self.strategy,
            "status": self.status,
            "error": self.error,
            "tx_hash": self.tx_hash,
        }


@dataclass
class MintOutcome:
    item_id: int
    wallet: str
    quantity: int
    state: str = STATE_IDLE
    reason: str | None = None
    diagnostic: str | None = None
    tx_hash: str | None = None
    strategy: str | None = None
    approval_tx_hash: str | None = None
    ledger_recorded: bool = False
    price_per_token: int | None = None
    currency_address: str | None = None
    attempts: list[Attempt] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.state == STATE_SUCCEEDED

    @property
    def attempted_strategies(self) -> list[str]:
        return [a.strategy for a in self.attempts]

    def to_dict(self) -> dict:
        total = self.price_per_token * self.quantity if self.price_per_token is not None else None
        return {
            "item_id": self.item_id,
            "wallet": self.wallet,
            "quantity": self.quantity,
            "state": self.state,
            "reason": self.reason,
            "diagnostic": self.diagnostic,
            "tx_hash": self.tx_hash,
            "strategy": self.strategy,
            "approval_tx_hash": self.approval_tx_hash,
            "ledger_recorded": self.ledger_recorded,
            "price_per_token": str(self.price_per_token) if self.price_per_token is not None else None,
            "total_price": str(total) if total is not None else None,
            "currency_address": self.currency_address,
            "attempts": [a.to_dict() for a in self.attempts],
        }


class MintOrchestrator:
    """One buyer's wallet session. Not reentrant: a second run while busy raises MintInProgressError."""

    def __init__(
        self,
        wallet: Wallet,
        *,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
        registry: InFlightRegistry = in_flight,
    ):
        self.wallet = wallet
        self.strategies = tuple(strategies)
        self.registry = registry
        self.state = STATE_IDLE

    def _enter(self, outcome: MintOutcome, state: str) -> None:
        logger.debug("Mint %s/%s: %s -> %s", outcome.wallet, outcome.item_id, self.state, state)
        self.state = state
        outcome.state = state

    def _fail(self, outcome: MintOutcome, reason: str, diagnostic: str | None = None) -> MintOutcome:
        self._enter(outcome, STATE_FAILED)
        outcome.reason = reason
        outcome.diagnostic = diagnostic
        logger.info("Mint %s/%s failed: %s %s", outcome.wallet, outcome.item_id, reason, diagnostic or "")
        return outcome

    def run(
        self,
        item_id: int,
        quantity: int,
        *,
        accept_price_increase: bool = False,
        now: datetime | None = None,
    ) -> MintOutcome:
        if self.state in BUSY_STATES:
            raise MintInProgressError(self.wallet.address, item_id)
        with self.registry.hold(self.wallet.address, item_id):
            try:
                return self._run(item_id, quantity, accept_price_increase=accept_price_increase, now=now)
            except Exception:
                self.state = STATE_FAILED
                raise

    def _run(self, item_id: int, quantity, *, accept_price_increase: bool, now: datetime | None) -> MintOutcome:
        outcome = MintOutcome(item_id=item_id, wallet=self.wallet.address.lower(), quantity=quantity)
        self._enter(outcome, STATE_VALIDATING)

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            return self._fail(outcome, FAIL_INVALID_QUANTITY, "quantity must be a positive integer")

        decision, state = eligibility_service.evaluate(self.wallet.address, item_id, now)
        if decision.denial_reason:
            return self._fail(outcome, decision.denial_reason)
        if quantity > decision.max_mint_amount:
            return self._fail(
                outcome,
                FAIL_WALLET_CAP_REACHED,
                f"requested {quantity}, wallet may mint {decision.max_mint_amount}",
            )
        if state.remaining_supply is not None and quantity > state.remaining_supply:
            return self._fail(
                outcome,
                FAIL_INSUFFICIENT_SUPPLY,
                f"requested {quantity}, {state.remaining_supply} remaining",
            )

        price = state.effective_price
        if state.price_mismatch:
            if not accept_price_increase:
                return self._fail(
                    outcome,
                    FAIL_PRICE_CONFIRMATION,
                    f"ledger price {state.onchain_price} exceeds listed price {state.effective_price}",
                )
            # The ledger only accepts its own price
            price = state.onchain_price

        try:
            contract = chain_service.get_reader().contract_address
        except ChainReadError as exc:
            return self._fail(outcome, FAIL_NOT_CONFIGURED, str(exc))
        currency_address = NATIVE_PLACEHOLDER if state.currency_is_native else state.effective_currency_address
        outcome.price_per_token = price
        outcome.currency_address = currency_address

        proof = []
        if decision.allowlist_mode == eligibility_service.MODE_ALLOWLIST:
            proof = (merkle_service.get_proof(item_id, decision.address) or {}).get("proof", [])

        ctx = PurchaseContext(
            contract_address=contract,
            receiver=decision.address,
            item_id=item_id,
            quantity=quantity,
            currency_address=currency_address,
            price_per_token=price,
            is_native=state.currency_is_native,
            proof=proof,
        )

        if not ctx.is_native and ctx.total_price > 0:
            failed = self._ensure_allowance(outcome, ctx)
            if failed is not None:
                return failed

        return self._mint(outcome, ctx)

    def _ensure_allowance(self, outcome: MintOutcome, ctx: PurchaseContext) -> MintOutcome | None:
        try:
            current = chain_service.get_reader().allowance(ctx.currency_address, ctx.receiver, ctx.contract_address)
        except ChainReadError as exc:
            return self._fail(outcome, FAIL_TRANSPORT, f"allowance read failed: {exc}")
        if current >= ctx.total_price:
            return None

        self._enter(outcome, STATE_APPROVING)
        call = approve_call(ctx.currency_address, ctx.contract_address, ctx.total_price)
        try:
            tx_hash = self.wallet.send_transaction(call)
            outcome.approval_tx_hash = tx_hash
            self.wallet.wait_for_receipt(tx_hash)
        except UserRejectedError as exc:
            return self._fail(outcome, FAIL_USER_REJECTED, str(exc))
        except InsufficientBalanceError as exc:
            return self._fail(outcome, FAIL_INSUFFICIENT_BALANCE, str(exc))
        except TransactionRevertedError as exc:
            return self._fail(outcome, FAIL_APPROVAL, str(exc))
        except WalletError as exc:
            return self._fail(outcome, FAIL_TRANSPORT, str(exc))
        return None

    def _record(self, outcome: MintOutcome, ctx: PurchaseContext) -> None:
        try:
            supply_service.record_purchase(
                item_id=ctx.item_id,
                wallet=ctx.receiver,
                quantity=ctx.quantity,
                tx_hash=outcome.tx_hash,
                strategy=outcome.strategy,
                price_paid=ctx.total_price,
                currency_address=ctx.currency_address,
            )
        except Exception:
            db.session.rollback()
            logger.exception(
                "Mint %s/%s confirmed in %s but the purchase was not recorded locally",
                outcome.wallet, outcome.item_id, outcome.tx_hash,
            )
            outcome.diagnostic = "purchase confirmed on the ledger; local supply counter not updated"
            return
        outcome.ledger_recorded = True

    def _mint(self, outcome: MintOutcome, ctx: PurchaseContext) -> MintOutcome:
        self._enter(outcome, STATE_MINTING)
        last_error = None
        for strategy in self.strategies:
            call = strategy(ctx)
            attempt = Attempt(strategy=call.name, status="pending")
            outcome.attempts.append(attempt)
            try:
                attempt.tx_hash = self.wallet.send_transaction(call)
                self.wallet.wait_for_receipt(attempt.tx_hash)
            except TransactionRevertedError as exc:
                attempt.status = "reverted"
                attempt.error = last_error = str(exc)
                continue
            except UserRejectedError as exc:
                attempt.status = "rejected"
                attempt.error = str(exc)
                return self._fail(outcome, FAIL_USER_REJECTED, str(exc))
            except InsufficientBalanceError as exc:
                attempt.status = "failed"
                attempt.error = str(exc)
                return self._fail(outcome, FAIL_INSUFFICIENT_BALANCE, str(exc))
            except WalletError as exc:
                attempt.status = "failed"
                attempt.error = str(exc)
                return self._fail(outcome, FAIL_TRANSPORT, str(exc))

            attempt.status = "succeeded"
            outcome.tx_hash = attempt.tx_hash
            outcome.strategy = call.name
            self._record(outcome, ctx)
            self._enter(outcome, STATE_SUCCEEDED)
            logger.info(
                "Mint %s/%s succeeded via %s: %s",
                outcome.wallet, outcome.item_id, call.name, attempt.tx_hash,
            )
            return outcome

        tried = ", ".join(outcome.attempted_strategies) or "none"
        return self._fail(outcome, FAIL_ALL_REVERTED, f"tried {tried}; last error: {last_error}")


def build_orchestrator(wallet: Wallet) -> MintOrchestrator:
    strategies = current_app.extensions.get("mintgate.purchase_strategies", DEFAULT_STRATEGIES)
    return MintOrchestrator(wallet, strategies=strategies)

"""
Purchase call strategies.

Drop contracts in the wild expose different purchase entry points. Each
strategy is a pure function PurchaseContext -> CallDescriptor; the
orchestrator tries them in order and moves on when the ledger reverts.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from .abi_codec import ZERO_ADDRESS, encode_call


# Sentinel the drop contract reads as "use the claim condition's price"
PRICE_FROM_CONDITION = 2**256 - 1


@dataclass(frozen=True)
class PurchaseContext:
    contract_address: str
    receiver: str
    item_id: int
    quantity: int
    currency_address: str
    price_per_token: int
    is_native: bool
    proof: list[str] = field(default_factory=list)

    @property
    def total_price(self) -> int:
        return self.price_per_token * self.quantity

    @property
    def value(self) -> int:
        """Native amount attached to the transaction (zero for token payments)."""
        return self.total_price if self.is_native else 0


@dataclass(frozen=True)
class CallDescriptor:
    name: str
    signature: str
    to: str
    data: str
    value: int = 0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "signature": self.signature,
            "to": self.to,
            "value": str(self.value),
        }


Strategy = Callable[[PurchaseContext], CallDescriptor]


def _describe(name: str, signature: str, ctx: PurchaseContext, args: list, value: int) -> CallDescriptor:
    return CallDescriptor(
        name=name,
        signature=signature,
        to=ctx.contract_address,
        data=encode_call(signature, args),
        value=value,
    )


def claim_with_allowlist_proof(ctx: PurchaseContext) -> CallDescriptor:
    signature = "claim(address,uint256,uint256,address,uint256,(bytes32[],uint256,uint256,address),bytes)"
    # Zero limit, max price and zero currency defer to the active claim condition
    allowlist_proof = (ctx.proof, 0, PRICE_FROM_CONDITION, ZERO_ADDRESS)
    args = [
        ctx.receiver,
        ctx.item_id,
        ctx.quantity,
        ctx.currency_address,
        ctx.price_per_token,
        allowlist_proof,
        b"",
    ]
    return _describe("claim", signature, ctx, args, ctx.value)


def claim_with_proof_array(ctx: PurchaseContext) -> CallDescriptor:
    signature = "claim(address,uint256,uint256,address,uint256,bytes32[],bytes)"
    args = [
        ctx.receiver,
        ctx.item_id,
        ctx.quantity,
        ctx.currency_address,
        ctx.price_per_token,
        ctx.proof,
        b"",
    ]
    return _describe("claim-legacy", signature, ctx, args, ctx.value)


def claim_simple(ctx: PurchaseContext) -> CallDescriptor:
    signature = "claim(address,uint256,uint256)"
    return _describe("claim-simple", signature, ctx, [ctx.receiver, ctx.item_id, ctx.quantity], ctx.value)


def mint_to(ctx: PurchaseContext) -> CallDescriptor:
    signature = "mintTo(address,uint256,uint256)"
    return _describe("mint-to", signature, ctx, [ctx.receiver, ctx.item_id, ctx.quantity], ctx.value)


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    claim_with_allowlist_proof,
    claim_with_proof_array,
    claim_simple,
    mint_to,
)


def approve_call(token_address: str, spender: str, amount: int) -> CallDescriptor:
    signature = "approve(address,uint256)"
    return CallDescriptor(
        name="approve",
        signature=signature,
        to=token_address,
        data=encode_call(signature, [spender, amount]),
        value=0,
    )

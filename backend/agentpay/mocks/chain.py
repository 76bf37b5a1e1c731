"""
Simulated MNEE Chain

In-memory ledger used in demo mode and tests. Transaction hashes are derived
deterministically from the transfer and a nonce, so repeated runs produce
the same hashes.
"""
import hashlib
import logging
from decimal import Decimal
from typing import Dict, Optional

from ..exceptions import ExternalCapabilityError
from ..services.chain_service import TransactionReceipt

logger = logging.getLogger(__name__)

DEFAULT_CONFIRMATIONS = 12
DEFAULT_GAS_USED = 50000
DEFAULT_GAS_PRICE_GWEI = Decimal("20")


class SimulatedChain:
    """
    Deterministic ChainClient.

    Attributes:
        confirmations: Confirmations reported on every receipt
        gas_used: Gas reported on every receipt
        fail_transfers: Raise ExternalCapabilityError from transfer()
        receipt_overrides: Per-hash field overrides applied to receipts
    """

    def __init__(
        self,
        balances: Optional[Dict[str, Decimal]] = None,
        confirmations: int = DEFAULT_CONFIRMATIONS,
        gas_used: int = DEFAULT_GAS_USED,
        gas_price_gwei: Decimal = DEFAULT_GAS_PRICE_GWEI,
    ):
        self.balances: Dict[str, Decimal] = {a.lower(): b for a, b in (balances or {}).items()}
        self.confirmations = confirmations
        self.gas_used = gas_used
        self.gas_price_gwei = gas_price_gwei
        self.fail_transfers = False
        self.receipt_overrides: Dict[str, Dict] = {}
        self._receipts: Dict[str, TransactionReceipt] = {}
        self._nonce = 0

    async def transfer(self, from_address: str, to_address: str, amount: Decimal) -> str:
        if self.fail_transfers:
            raise ExternalCapabilityError(
                "Transfer rejected by node",
                {"from": from_address, "to": to_address, "amount": str(amount)}
            )

        self._nonce += 1
        seed = f"{from_address.lower()}:{to_address.lower()}:{amount}:{self._nonce}"
        tx_hash = "0x" + hashlib.sha256(seed.encode()).hexdigest()

        sender = from_address.lower()
        if sender in self.balances:
            self.balances[sender] -= amount
        self.balances[to_address.lower()] = self.balances.get(to_address.lower(), Decimal("0")) + amount

        self._receipts[tx_hash] = TransactionReceipt(
            transaction_hash=tx_hash,
            success=True,
            confirmations=self.confirmations,
            gas_used=self.gas_used,
            effective_gas_price_gwei=self.gas_price_gwei,
            to_address=to_address,
            amount=amount,
            block_number=1_000_000 + self._nonce,
        )
        logger.info(f"Simulated transfer {amount} MNEE {from_address} -> {to_address}: {tx_hash}")
        return tx_hash

    async def get_balance(self, address: str) -> Decimal:
        return self.balances.get(address.lower(), Decimal("0"))

    async def verify_transaction(self, transaction_hash: str) -> bool:
        return transaction_hash in self._receipts

    async def get_transaction_receipt(self, transaction_hash: str) -> Optional[TransactionReceipt]:
        receipt = self._receipts.get(transaction_hash)
        if receipt is None:
            return None
        overrides = self.receipt_overrides.get(transaction_hash)
        return receipt.model_copy(update=overrides) if overrides else receipt

    def forget(self, transaction_hash: str) -> None:
        """Drop a transaction so it looks unknown to the ledger."""
        self._receipts.pop(transaction_hash, None)

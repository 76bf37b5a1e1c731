"""
Chain Client Contract

Narrow interface to the MNEE token ledger. Production deployments plug in a
node-backed client; tests and demo mode use mocks.chain.SimulatedChain.
"""
from decimal import Decimal
from typing import Optional, Protocol

from pydantic import BaseModel


class TransactionReceipt(BaseModel):
    transaction_hash: str
    success: bool
    confirmations: int
    gas_used: int
    effective_gas_price_gwei: Decimal
    to_address: str
    amount: Decimal
    block_number: Optional[int] = None


class ChainClient(Protocol):
    async def transfer(self, from_address: str, to_address: str, amount: Decimal) -> str:
        """
        Send MNEE and return the transaction hash.

        Raises:
            ExternalCapabilityError: the node rejected or never received the transfer
        """
        ...

    async def get_balance(self, address: str) -> Decimal:
        ...

    async def verify_transaction(self, transaction_hash: str) -> bool:
        """True when the hash is known to the ledger."""
        ...

    async def get_transaction_receipt(self, transaction_hash: str) -> Optional[TransactionReceipt]:
        ...

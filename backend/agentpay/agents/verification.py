"""
Verification Agent

Checks a submitted transfer against the chain and settles the transaction.

Checks (in order):
- Transaction Exists (a failure stops here)
- Amount Verification: |receipt amount - expected| < 0.00001
- Recipient Verification: receipt recipient matches (case-insensitive)
- Transaction Finality: confirmations >= min_confirmations
- Gas Usage: gas_used < max_reasonable_gas
"""
import logging
from decimal import Decimal
from typing import List

from ..config import settings
from ..db.repositories import TransactionRepository
from ..exceptions import NotFoundError
from ..models.tasks import AgentResult, AgentTask, VerificationParams
from ..models.transactions import VerificationCheck, VerificationResult
from ..services.chain_service import ChainClient, TransactionReceipt
from .base import Capability

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.00001")


def check_receipt(
    receipt: TransactionReceipt,
    expected_amount: Decimal,
    expected_recipient: str,
    min_confirmations: int,
    max_reasonable_gas: int,
) -> List[VerificationCheck]:
    """Run the four receipt checks; never short-circuits."""
    amount_ok = abs(receipt.amount - expected_amount) < AMOUNT_TOLERANCE
    recipient_ok = receipt.to_address.lower() == expected_recipient.lower()
    final = receipt.confirmations >= min_confirmations
    gas_ok = receipt.gas_used < max_reasonable_gas

    return [
        VerificationCheck(
            name="Amount Verification",
            passed=amount_ok,
            message=(
                f"Amount matches: {expected_amount} MNEE" if amount_ok
                else f"Amount mismatch: expected {expected_amount}, got {receipt.amount}"
            ),
            confidence=1.0 if amount_ok else 0.0,
        ),
        VerificationCheck(
            name="Recipient Verification",
            passed=recipient_ok,
            message=(
                "Recipient address matches" if recipient_ok
                else f"Recipient mismatch: expected {expected_recipient}, got {receipt.to_address}"
            ),
            confidence=1.0 if recipient_ok else 0.0,
        ),
        VerificationCheck(
            name="Transaction Finality",
            passed=final,
            message=f"{receipt.confirmations} confirmations" + (" (sufficient)" if final else " (waiting)"),
            confidence=1.0 if final else 0.5,
        ),
        VerificationCheck(
            name="Gas Usage",
            passed=gas_ok,
            message=f"Gas used: {receipt.gas_used}" + (" (reasonable)" if gas_ok else " (excessive)"),
            confidence=0.9,
        ),
    ]


class VerificationAgent:
    capability = Capability.VERIFICATION

    def __init__(
        self,
        transactions: TransactionRepository,
        chain: ChainClient,
        min_confirmations: int = settings.min_confirmations,
        max_reasonable_gas: int = settings.max_reasonable_gas,
    ):
        self.transactions = transactions
        self.chain = chain
        self.min_confirmations = min_confirmations
        self.max_reasonable_gas = max_reasonable_gas

    async def verify(self, transaction_hash: str, expected_amount: Decimal, expected_recipient: str) -> VerificationResult:
        exists = await self.chain.verify_transaction(transaction_hash)
        receipt = await self.chain.get_transaction_receipt(transaction_hash) if exists else None

        if receipt is None or not receipt.success:
            return VerificationResult(
                transaction_hash=transaction_hash,
                is_verified=False,
                checks=[VerificationCheck(
                    name="Transaction Exists",
                    passed=False,
                    message="Transaction not found on blockchain" if receipt is None
                    else "Transaction reverted on blockchain",
                    confidence=1.0,
                )],
            )

        checks = [VerificationCheck(
            name="Transaction Exists",
            passed=True,
            message="Transaction found on blockchain",
            confidence=1.0,
        )]
        checks.extend(check_receipt(
            receipt, expected_amount, expected_recipient, self.min_confirmations, self.max_reasonable_gas
        ))
        return VerificationResult(
            transaction_hash=transaction_hash,
            is_verified=all(c.passed for c in checks),
            checks=checks,
            confirmations=receipt.confirmations,
            gas_used=receipt.gas_used,
            gas_price_gwei=receipt.effective_gas_price_gwei,
        )

    async def run(self, task: AgentTask) -> AgentResult:
        params = task.require(VerificationParams)
        transaction = await self.transactions.get_by_id(params.transaction_id)
        if transaction is None:
            raise NotFoundError(
                f"Transaction not found: {params.transaction_id}",
                {"transaction_id": params.transaction_id}
            )

        result = await self.verify(transaction.transaction_hash, params.expected_amount, params.expected_recipient)
        transaction.complete(result, result.gas_used, result.gas_price_gwei)
        await self.transactions.update(transaction)

        logger.info(
            f"Verification of {transaction.id}: verified={result.is_verified}, "
            f"confidence={result.confidence:.2f}"
        )
        return AgentResult(
            success=result.is_verified,
            output=result,
            reasoning="; ".join(c.message for c in result.checks),
            tools_used=["chain_verify", "chain_receipt"],
            confidence_score=result.confidence,
            error_message=result.failure_reason,
            details={"transaction_status": transaction.status.value},
        )

"""
Tests for Transfer Verification
===============================
"""
from decimal import Decimal

from agentpay.agents.verification import VerificationAgent
from agentpay.mocks.chain import SimulatedChain

AGENT_WALLET = "0x" + "a" * 40
PROVIDER_WALLET = "0x" + "b" * 40
OTHER_WALLET = "0x" + "c" * 40


async def transfer(chain, amount="85"):
    return await chain.transfer(AGENT_WALLET, PROVIDER_WALLET, Decimal(amount))


class TestVerify:
    """Receipt checks against the simulated chain."""

    async def test_clean_transfer_verifies(self):
        chain = SimulatedChain()
        tx_hash = await transfer(chain)
        result = await VerificationAgent(None, chain).verify(tx_hash, Decimal("85"), PROVIDER_WALLET)

        assert result.is_verified
        assert [c.name for c in result.checks] == [
            "Transaction Exists",
            "Amount Verification",
            "Recipient Verification",
            "Transaction Finality",
            "Gas Usage",
        ]
        assert result.confirmations == 12
        assert result.gas_used == 50000

    async def test_confirmation_threshold(self):
        """Five confirmations are not final; six are."""
        chain = SimulatedChain(confirmations=5)
        tx_hash = await transfer(chain)
        agent = VerificationAgent(None, chain, min_confirmations=6)

        result = await agent.verify(tx_hash, Decimal("85"), PROVIDER_WALLET)
        assert not result.is_verified
        assert result.failure_reason == "5 confirmations (waiting)"

        chain.receipt_overrides[tx_hash] = {"confirmations": 6}
        assert (await agent.verify(tx_hash, Decimal("85"), PROVIDER_WALLET)).is_verified

    async def test_unknown_hash(self):
        """An unknown transaction yields a single failing existence check."""
        chain = SimulatedChain()
        result = await VerificationAgent(None, chain).verify("0x" + "f" * 64, Decimal("1"), PROVIDER_WALLET)

        assert not result.is_verified
        assert len(result.checks) == 1
        assert result.checks[0].name == "Transaction Exists"
        assert result.failure_reason == "Transaction not found on blockchain"

    async def test_reverted_transaction(self):
        chain = SimulatedChain()
        tx_hash = await transfer(chain)
        chain.receipt_overrides[tx_hash] = {"success": False}
        result = await VerificationAgent(None, chain).verify(tx_hash, Decimal("85"), PROVIDER_WALLET)
        assert result.failure_reason == "Transaction reverted on blockchain"

    async def test_amount_tolerance(self):
        """Differences below 0.00001 pass; larger ones fail."""
        chain = SimulatedChain()
        tx_hash = await transfer(chain)
        agent = VerificationAgent(None, chain)

        chain.receipt_overrides[tx_hash] = {"amount": Decimal("85.000009")}
        assert (await agent.verify(tx_hash, Decimal("85"), PROVIDER_WALLET)).is_verified

        chain.receipt_overrides[tx_hash] = {"amount": Decimal("85.5")}
        result = await agent.verify(tx_hash, Decimal("85"), PROVIDER_WALLET)
        assert not result.is_verified
        assert result.failure_reason.startswith("Amount mismatch")

    async def test_recipient_mismatch(self):
        chain = SimulatedChain()
        tx_hash = await transfer(chain)
        agent = VerificationAgent(None, chain)

        upper = await agent.verify(tx_hash, Decimal("85"), "0x" + "B" * 40)
        assert upper.is_verified

        other = await agent.verify(tx_hash, Decimal("85"), OTHER_WALLET)
        assert not other.is_verified
        assert other.failure_reason.startswith("Recipient mismatch")

    async def test_excessive_gas(self):
        """Gas at the ceiling fails."""
        chain = SimulatedChain(gas_used=100000)
        tx_hash = await transfer(chain)
        result = await VerificationAgent(None, chain, max_reasonable_gas=100000).verify(
            tx_hash, Decimal("85"), PROVIDER_WALLET
        )
        assert not result.is_verified
        assert result.failure_reason == "Gas used: 100000 (excessive)"
        assert result.confidence == (1.0 + 1.0 + 1.0 + 1.0 + 0.9) / 5

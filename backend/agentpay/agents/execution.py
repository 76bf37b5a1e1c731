"""
Execution Agent

Turns a negotiated price into an on-chain transfer:

1. Reject prices above the budget
2. Initiate the transaction and apply guardrails (blocked -> persisted, stop)
3. Debit the agent and persist the transaction atomically
4. Transfer on-chain and mark the transaction submitted

A failing transfer fails the transaction and refunds the debit before the
error propagates.
"""
import asyncio
import logging

from ..db.repositories import AgentRepository, TransactionRepository
from ..exceptions import NotFoundError
from ..models.policy import GuardrailsPolicy
from ..models.tasks import AgentResult, AgentTask, ExecutionParams
from ..models.transactions import Transaction
from ..services.chain_service import ChainClient
from .base import Capability

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 20


class ExecutionAgent:
    capability = Capability.EXECUTION

    def __init__(
        self,
        agents: AgentRepository,
        transactions: TransactionRepository,
        chain: ChainClient,
        policy: GuardrailsPolicy,
    ):
        self.agents = agents
        self.transactions = transactions
        self.chain = chain
        self.policy = policy

    async def run(self, task: AgentTask) -> AgentResult:
        params = task.require(ExecutionParams)
        agent = await self.agents.get_by_id(params.agent_id)
        if agent is None:
            raise NotFoundError(f"Agent not found: {params.agent_id}", {"agent_id": params.agent_id})

        if params.amount > params.budget_limit:
            return AgentResult.failed(
                f"Price {params.amount} MNEE exceeds budget {params.budget_limit} MNEE",
                amount=str(params.amount),
                budget_limit=str(params.budget_limit),
            )

        transaction = Transaction.initiate(
            agent_id=agent.id,
            service_id=params.service_id,
            amount=params.amount,
            from_address=agent.wallet_address,
            to_address=params.to_address,
            reasoning=params.reasoning or task.objective,
        )

        spent_today = await self.transactions.get_daily_spend(agent.id)
        history = await self.transactions.get_by_agent_id(agent.id, limit=HISTORY_WINDOW)
        check = transaction.apply_guardrails(self.policy.for_agent(agent), spent_today, history)

        if not check.passed:
            await self.transactions.create(transaction)
            logger.warning(f"Transaction {transaction.id} blocked by guardrails: {check.failure_reason}")
            return AgentResult(
                success=False,
                output=transaction,
                error_message=f"Blocked by guardrails: {check.failure_reason}",
                tools_used=["guardrails"],
                details={"blocked": True, "transaction_id": transaction.id},
            )

        remaining = await self.transactions.create_with_debit(transaction)

        try:
            transaction_hash = await self.chain.transfer(
                transaction.from_address,
                transaction.to_address,
                transaction.amount,
            )
        except (Exception, asyncio.CancelledError) as e:
            reason = str(e) or "cancelled"
            logger.error(f"Transfer failed for {transaction.id}: {reason}")
            transaction.fail(f"Transfer failed: {reason}")
            await self.transactions.fail_with_refund(transaction)
            raise

        transaction.mark_submitted(transaction_hash)
        await self.transactions.update(transaction)

        logger.info(f"Transaction {transaction.id} submitted: {transaction_hash}")
        return AgentResult(
            success=True,
            output=transaction,
            reasoning=f"Paid {transaction.amount} MNEE to {transaction.to_address}",
            tools_used=["guardrails", "chain_transfer"],
            confidence_score=1.0,
            details={
                "transaction_id": transaction.id,
                "transaction_hash": transaction_hash,
                "remaining_balance": str(remaining),
            },
        )

"""
Transactions API Endpoints

Read access to the transaction ledger, including guardrail and
verification records.
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from ..exceptions import NotFoundError
from ..models.transactions import Transaction
from .dependencies import AppServices, get_services

logger = logging.getLogger(__name__)

router = APIRouter()


def _transaction_view(transaction: Transaction) -> Dict[str, Any]:
    view = transaction.model_dump(mode="json")
    if transaction.guardrails_check is not None:
        view["guardrails_passed"] = transaction.guardrails_check.passed
    if transaction.verification is not None:
        view["verification_confidence"] = transaction.verification.confidence
    return view


@router.get("/pending")
async def get_pending_transactions_endpoint(services: AppServices = Depends(get_services)) -> Dict[str, Any]:
    """Transactions that are pending or submitted but not yet settled."""
    pending = await services.transactions.get_pending()
    return {"count": len(pending), "transactions": [_transaction_view(t) for t in pending]}


@router.get("/agent/{agent_id}")
async def get_agent_transactions_endpoint(
    agent_id: str,
    limit: int = Query(10, ge=1, le=100, description="Max results"),
    offset: int = Query(0, ge=0, description="Pagination offset"),
    services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    """
    Get transactions for an agent, newest first.

    Example:
        GET /api/transactions/agent/<agent_id>?limit=20&offset=0
    """
    logger.debug(f"Retrieving transactions for agent: {agent_id}, limit={limit}, offset={offset}")
    transactions = await services.transactions.get_by_agent_id(agent_id, limit, offset)
    return {
        "agent_id": agent_id,
        "count": len(transactions),
        "transactions": [_transaction_view(t) for t in transactions],
    }


@router.get("/{transaction_id}")
async def get_transaction_endpoint(
    transaction_id: str,
    services: AppServices = Depends(get_services)
) -> Dict[str, Any]:
    transaction = await services.transactions.get_by_id(transaction_id)
    if transaction is None:
        raise NotFoundError(
            f"No transaction found with ID: {transaction_id}",
            {"transaction_id": transaction_id}
        )
    return _transaction_view(transaction)

"""
APScheduler Configuration for Maintenance Jobs

Runs periodic agent upkeep in the background:
- agent self-checks for every active agent (degrades unhealthy agents)
- balance reconciliation from the chain into the agent repository

Jobs are persisted through SQLAlchemyJobStore, so job functions are
module-level and read their collaborators from configure_maintenance_jobs().
"""
import logging
from typing import List, Optional

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.sqlalchemy import SQLAlchemyJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..db.repositories import AgentRepository
from ..exceptions import ExternalCapabilityError
from ..models.agents import SelfCheckResult
from .chain_service import ChainClient

logger = logging.getLogger(__name__)

SELF_CHECK_JOB_ID = "agent_self_checks"
RECONCILE_JOB_ID = "balance_reconciliation"


class MaintenanceScheduler:
    """
    AsyncIOScheduler whose jobs persist in their own SQLite file.

    The job store lives next to the main database (`<db>_scheduler.db`) so
    APScheduler's synchronous writes never contend with the async engine.
    Missed runs coalesce and each job runs one instance at a time.
    """

    def __init__(self, database_path: Optional[str] = None):
        base_path = database_path or settings.database_path
        self.jobstore_path = base_path.replace(".db", "_scheduler.db")
        jobstore = SQLAlchemyJobStore(
            url=f"sqlite:///{self.jobstore_path}",
            tablename="maintenance_jobs",
            engine_options={"connect_args": {"timeout": 30, "check_same_thread": False}},
        )
        self._scheduler = AsyncIOScheduler(
            jobstores={"default": jobstore},
            executors={"default": AsyncIOExecutor()},
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 300},
            timezone="UTC",
        )
        logger.info(f"Maintenance scheduler configured (job store: {self.jobstore_path})")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if self._scheduler.running:
            logger.warning("Maintenance scheduler is already running")
            return
        self._scheduler.start()
        logger.info(f"Maintenance scheduler started with {len(self._scheduler.get_jobs())} jobs")

    def shutdown(self, wait: bool = True) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Maintenance scheduler stopped")

    def add_interval_job(self, job_id: str, job_func, interval_minutes: float) -> str:
        """
        Register (or replace) a recurring job.

        job_func must be a module-level coroutine function: the job store
        pickles jobs by reference.
        """
        self._scheduler.add_job(
            job_func,
            trigger=IntervalTrigger(minutes=interval_minutes),
            id=job_id,
            name=job_id.replace("_", " "),
            replace_existing=True,
        )
        logger.info(f"Scheduled {job_id} every {interval_minutes:g} min")
        return job_id

    def get_all_jobs(self):
        return self._scheduler.get_jobs()


_scheduler: Optional[MaintenanceScheduler] = None


def get_scheduler() -> MaintenanceScheduler:
    global _scheduler
    if _scheduler is None:
        _scheduler = MaintenanceScheduler()
    return _scheduler


# ============================================================================
# Job functions
# ============================================================================

_agents: Optional[AgentRepository] = None
_chain: Optional[ChainClient] = None


def configure_maintenance_jobs(agents: AgentRepository, chain: ChainClient) -> None:
    """Inject the collaborators the job functions use."""
    global _agents, _chain
    _agents = agents
    _chain = chain


def _require_configured():
    if _agents is None or _chain is None:
        raise RuntimeError("Maintenance jobs not configured. Call configure_maintenance_jobs() first.")
    return _agents, _chain


async def run_agent_self_checks() -> List[SelfCheckResult]:
    """Self-check every active agent and persist any degradation."""
    agents, _ = _require_configured()
    results = []
    for agent in await agents.get_active():
        check = agent.perform_self_check()
        results.append(check)
        if not check.is_healthy:
            logger.warning(f"Agent {agent.id} degraded: failed checks {check.failed_checks}")
            await agents.update(agent)
    logger.info(f"Self-checked {len(results)} active agents")
    return results


async def reconcile_balances() -> int:
    """
    Copy on-chain balances into the agent repository.

    Returns:
        Number of agents whose balance changed
    """
    agents, chain = _require_configured()
    changed = 0
    for agent in await agents.get_active():
        try:
            on_chain = await chain.get_balance(agent.wallet_address)
        except ExternalCapabilityError as e:
            logger.error(f"Balance lookup failed for agent {agent.id}: {e.message}")
            continue
        if on_chain == agent.balance:
            continue
        # Skip agents debited or refunded since the read; the next run picks them up
        if not await agents.set_balance(agent.id, on_chain, expected=agent.balance):
            logger.warning(f"Balance of agent {agent.id} changed during reconciliation; skipped")
            continue
        changed += 1
        logger.info(f"Reconciled agent {agent.id}: {agent.balance} -> {on_chain} MNEE")
    return changed


# ============================================================================
# Scheduler Lifecycle Functions (for FastAPI integration)
# ============================================================================

def start_scheduler(reconcile: bool = True):
    """
    Register the maintenance jobs and start the scheduler.

    Args:
        reconcile: Also schedule balance reconciliation
    """
    scheduler = get_scheduler()
    scheduler.add_interval_job(SELF_CHECK_JOB_ID, run_agent_self_checks, settings.maintenance_interval_minutes)
    if reconcile:
        scheduler.add_interval_job(RECONCILE_JOB_ID, reconcile_balances, settings.maintenance_interval_minutes)
    scheduler.start()


def shutdown_scheduler(wait: bool = True):
    if _scheduler is not None:
        _scheduler.shutdown(wait=wait)

"""Background tasks for duel maintenance."""
import asyncio
import logging

from quizduel.database import AsyncSessionLocal
from quizduel.services.duels.lobby_service import DuelLobbyService
from quizduel.services.duels.settlement_service import DuelSettlementService
from quizduel.utils.clock import Clock, utc_now

logger = logging.getLogger(__name__)

# Track if maintenance task is running to prevent concurrent executions
_maintenance_task_running = False


async def run_duel_maintenance(session_factory=AsyncSessionLocal, clock: Clock = utc_now) -> dict | None:
    """Run both duel sweeps once.

    1. Cancel WAITING/READY lobbies past their expiry and refund the seats
    2. Settle PLAYING rounds that ran past the time limit

    Both sweeps are idempotent, so a run overlapping a user action or
    another worker's sweep is harmless. Within this process a second run is
    skipped while one is in flight.

    Returns:
        dict with ``cancelled`` and ``finalized`` counts, or None if skipped
    """
    global _maintenance_task_running

    if _maintenance_task_running:
        logger.debug("Duel maintenance already running, skipping")
        return None

    _maintenance_task_running = True
    try:
        async with session_factory() as db:
            cancelled = await DuelLobbyService(db, clock).check_expired_duels()
            finalized = await DuelSettlementService(db, clock).check_timed_out_duels()

        if cancelled or finalized:
            logger.info(
                f"Duel maintenance completed: {cancelled} lobbies cancelled, "
                f"{finalized} rounds finalized"
            )
        return {"cancelled": cancelled, "finalized": finalized}

    except Exception as e:
        logger.error(f"Error during duel maintenance: {e}", exc_info=True)
        return None
    finally:
        _maintenance_task_running = False


async def schedule_periodic_maintenance(interval_seconds: int = 60) -> None:
    """Run duel maintenance every ``interval_seconds``.

    Args:
        interval_seconds: Seconds between maintenance runs (default 60)
    """
    logger.info(f"Starting duel maintenance scheduler (interval: {interval_seconds}s)")

    while True:
        try:
            await asyncio.sleep(interval_seconds)
            await run_duel_maintenance()
        except asyncio.CancelledError:
            logger.info("Duel maintenance scheduler cancelled")
            break
        except Exception as e:
            logger.error(f"Unexpected error in maintenance scheduler: {e}", exc_info=True)
            # Continue despite errors, try again in interval
            await asyncio.sleep(interval_seconds)

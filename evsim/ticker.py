import asyncio
import logging

from .config import TICK_SEC
from .service import DashboardService


async def recompute_loop(service: DashboardService, period_sec: float = TICK_SEC):
    """Recompute active sessions every ``period_sec`` until cancelled."""
    while True:
        await asyncio.sleep(period_sec)
        try:
            for session in service.tick():
                logging.info(f"Auto-stopped {session.id}: cost={session.total_cost:.2f}")
            for session in service.manager.active_sessions():
                logging.debug(
                    f"Tick: id={session.id}, status={session.status}, "
                    f"energy(kWh)={session.energy_consumed:.3f}, cost={session.total_cost:.2f}"
                )
        except Exception:
            logging.exception("Recompute tick failed")

"""
API Dependencies

FastAPI dependency functions that hand route handlers the services built
by the application lifespan (stored on ``app.state.services``).
"""

import logging
from typing import Any, Optional

from fastapi import HTTPException, Request

from ..saga.integration import LiquidationService
from ..saga.monitor import ConsistencyMonitor

logger = logging.getLogger("payroll.api.dependencies")


def _service(request: Request, name: str) -> Optional[Any]:
    services = getattr(request.app.state, "services", None) or {}
    return services.get(name)


async def get_liquidation_service(request: Request) -> LiquidationService:
    service = _service(request, "liquidation_service")
    if service is None:
        logger.error("Liquidation service requested before startup completed")
        raise HTTPException(status_code=503, detail="Liquidation service unavailable")
    return service


async def get_consistency_monitor(request: Request) -> Optional[ConsistencyMonitor]:
    """The monitor is optional; routes must cope with None."""
    return _service(request, "consistency_monitor")

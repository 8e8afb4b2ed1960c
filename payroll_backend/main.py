"""
Payroll backend FastAPI application.

The lifespan wires configuration, logging, the database engine, the store
client, the liquidation service and the optional consistency monitor, and
publishes them on ``app.state.services`` for the API dependencies.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI

from . import __version__
from .api.liquidation_router import router as liquidation_router
from .clients.payroll_calculations import PayrollCalculationClient
from .config import get_app_config
from .db.session import configure_engine, dispose_engine, init_db
from .recovery.service import RecoveryService
from .saga.context import SagaRegistry
from .saga.integration import LiquidationService
from .saga.monitor import ConsistencyMonitor
from .store.sql_store import SQLStoreClient
from .utils.logging_config import setup_logging

logger = logging.getLogger("payroll.main")


async def initialize_services() -> Dict[str, Any]:
    """Build every long-lived service from the application configuration."""
    config = get_app_config()

    configure_engine(config.database_url)
    await init_db()

    calc_config = config.get_calculations_config()
    calculator = PayrollCalculationClient(
        calc_config["url"],
        token=calc_config["token"],
        timeout=calc_config["timeout"],
        max_attempts=calc_config["max_attempts"],
    )
    store = SQLStoreClient(calculator, call_timeout=config.store_call_timeout or None)
    registry = SagaRegistry()
    recovery = RecoveryService(store)
    liquidation_service = LiquidationService(store, registry=registry, recovery=recovery)

    services: Dict[str, Any] = {
        "store": store,
        "saga_registry": registry,
        "recovery_service": recovery,
        "liquidation_service": liquidation_service,
        "consistency_monitor": None,
    }

    monitor_config = config.get_monitor_config()
    if monitor_config["enabled"]:
        monitor = ConsistencyMonitor(
            store,
            registry,
            recovery=recovery,
            company_ids=monitor_config["company_ids"],
            auto_repair=monitor_config["auto_repair"],
            actor_id=monitor_config["actor_id"],
        )
        await monitor.start_monitoring(monitor_config["interval_seconds"])
        services["consistency_monitor"] = monitor

    return services


async def shutdown_services(services: Dict[str, Any]) -> None:
    monitor = services.get("consistency_monitor")
    if monitor is not None:
        await monitor.stop_monitoring()
    store = services.get("store")
    if store is not None:
        try:
            await store.close()
        except Exception as e:
            logger.warning(f"Error closing store client: {e}")
    await dispose_engine()


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_app_config()
    setup_logging(config.log_level, structured=config.log_structured)
    logger.info(f"Starting payroll backend {__version__}")

    app.state.services = await initialize_services()
    try:
        yield
    finally:
        await shutdown_services(app.state.services)
        logger.info("Payroll backend stopped")


def create_app() -> FastAPI:
    application = FastAPI(
        title="Payroll Liquidation Backend",
        version=__version__,
        lifespan=lifespan,
    )
    application.include_router(liquidation_router)

    @application.get("/health")
    async def health_check():
        return {"status": "ok", "version": __version__}

    return application


app = create_app()

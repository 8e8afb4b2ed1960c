"""
Consistency monitoring service.

Periodically sweeps the saga registry and the store: drops saga contexts
whose process never finished, scans each company for drift and, when
enabled, repairs what can be repaired without an operator.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..config.thresholds import LiquidationThresholds
from ..consistency.models import OverallHealth
from ..consistency.scanner import ConsistencyScanner
from ..recovery.service import RecoveryService
from ..store.client import Collections, StoreClient
from ..utils.datetime import isoformat_utc, utc_now
from .context import SagaRegistry

logger = logging.getLogger("payroll.saga.monitor")

_HEALTH_ORDER = [
    OverallHealth.HEALTHY,
    OverallHealth.MINOR_ISSUES,
    OverallHealth.MAJOR_ISSUES,
    OverallHealth.CRITICAL,
]


class ConsistencyMonitor:
    """
    Background sweeper for liquidation health.

    Features:
    - Purges abandoned saga contexts from the registry
    - Scans configured companies (or every company with periods)
    - Optional unattended repair of issues that need no confirmation
    """

    def __init__(
        self,
        store: StoreClient,
        registry: SagaRegistry,
        recovery: Optional[RecoveryService] = None,
        company_ids: Optional[List[str]] = None,
        auto_repair: bool = False,
        actor_id: str = "consistency-monitor",
        abandoned_max_age_hours: float = LiquidationThresholds.ABANDONED_SAGA_MAX_AGE_HOURS
    ):
        self.store = store
        self.registry = registry
        self.recovery = recovery or RecoveryService(store)
        self.scanner: ConsistencyScanner = self.recovery.scanner
        self.company_ids = list(company_ids or [])
        self.auto_repair = auto_repair
        self.actor_id = actor_id
        self.abandoned_max_age_hours = abandoned_max_age_hours
        self._monitoring = False
        self._monitor_task: Optional[asyncio.Task] = None
        self._last_sweep: Optional[Dict[str, Any]] = None

    @property
    def is_running(self) -> bool:
        return self._monitoring

    async def start_monitoring(self, check_interval_seconds: float = 300):
        """
        Start the background sweep loop.

        Args:
            check_interval_seconds: Pause between sweeps
        """
        if self._monitoring:
            logger.warning("Consistency monitoring already running")
            return

        self._monitoring = True
        self._monitor_task = asyncio.create_task(self._monitor_loop(check_interval_seconds))
        logger.info(f"Started consistency monitoring (every {check_interval_seconds}s)")

    async def stop_monitoring(self):
        """Stop background monitoring."""
        if not self._monitoring:
            return

        self._monitoring = False
        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None

        logger.info("Stopped consistency monitoring")

    async def _monitor_loop(self, check_interval: float):
        while self._monitoring:
            try:
                await self.run_sweep()
                await asyncio.sleep(check_interval)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in consistency monitoring loop: {e}", exc_info=True)
                await asyncio.sleep(check_interval)

    async def run_sweep(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Run one sweep.

        Returns:
            Sweep summary, also kept for get_health_report()
        """
        now = now or utc_now()
        dropped = self.registry.cleanup_abandoned(self.abandoned_max_age_hours, now=now)

        companies: Dict[str, Dict[str, Any]] = {}
        for company_id in await self._companies():
            try:
                report = await self.scanner.diagnose(company_id, now=now)
            except Exception as e:
                logger.error(f"Consistency scan failed for company {company_id}: {e}")
                companies[company_id] = {"overall_health": "unknown", "error": str(e)}
                continue

            summary: Dict[str, Any] = {
                "overall_health": report.overall_health.value,
                "total_issues": len(report.issues),
                "by_severity": report.count_by_severity(),
            }
            if report.overall_health != OverallHealth.HEALTHY:
                logger.warning(
                    f"Company {company_id} payroll health is {report.overall_health.value} "
                    f"({len(report.issues)} issues)"
                )
                if self.auto_repair:
                    executions = await self.recovery.auto_repair(company_id, self.actor_id, report=report)
                    summary["repairs"] = [execution.to_dict() for execution in executions]
            companies[company_id] = summary

        self._last_sweep = {
            "timestamp": isoformat_utc(now),
            "abandoned_sagas_dropped": dropped,
            "companies": companies,
        }
        return self._last_sweep

    async def _companies(self) -> List[str]:
        if self.company_ids:
            return list(self.company_ids)
        periods = await self.store.query(Collections.PERIODS)
        return sorted({period["company_id"] for period in periods})

    def get_health_report(self) -> Dict[str, Any]:
        """
        Summarize the last sweep together with the live saga registry.

        Returns:
            Health report with issues and recommendations
        """
        active = self.registry.active()
        report: Dict[str, Any] = {
            "timestamp": isoformat_utc(utc_now()),
            "monitoring": self._monitoring,
            "auto_repair": self.auto_repair,
            "active_sagas": len(active),
            "last_sweep": self._last_sweep,
            "health_status": "unknown" if self._last_sweep is None else OverallHealth.HEALTHY.value,
            "issues": [],
            "recommendations": [],
        }
        if self._last_sweep is None:
            return report

        worst = OverallHealth.HEALTHY
        for company_id, summary in self._last_sweep["companies"].items():
            try:
                health = OverallHealth(summary["overall_health"])
            except ValueError:
                report["issues"].append(f"Company {company_id} could not be scanned")
                continue
            if _HEALTH_ORDER.index(health) > _HEALTH_ORDER.index(worst):
                worst = health
            if health != OverallHealth.HEALTHY:
                report["issues"].append(
                    f"Company {company_id}: {summary['total_issues']} consistency issues ({health.value})"
                )
        report["health_status"] = worst.value

        if worst == OverallHealth.CRITICAL:
            report["recommendations"].append(
                "Run recovery for closed periods whose payroll records disagree"
            )
        elif worst != OverallHealth.HEALTHY:
            report["recommendations"].append("Review the recovery plans for affected companies")

        stale = [ctx.transaction_id for ctx in active if ctx.age_hours() > self.abandoned_max_age_hours]
        if stale:
            report["issues"].append(f"{len(stale)} liquidations have been running unusually long")
        return report

"""
Health checks for liveness and readiness probes.
"""
from datetime import datetime, timezone
from typing import Any, Dict
import time
import psutil
from .logging import get_logger
from .services.dedup import DedupStore, dedup_store
from .services.lead_store import LeadStore, lead_store

logger = get_logger()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class HealthChecker:
    """
    Health checker for the relay service.

    - Liveness: is the process serving requests?
    - Readiness: are the dedup backend and the leads table reachable, and
      is there disk and memory headroom?
    """

    def __init__(
        self,
        service_name: str = "leadrelay",
        version: str = "0.1.0",
        dedup: DedupStore | None = None,
        leads: LeadStore | None = None,
    ):
        self.service_name = service_name
        self.version = version
        self.dedup = dedup or dedup_store
        self.leads = leads or lead_store

    def liveness(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": _timestamp(),
        }

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Returns:
            dict with overall ``status`` (ready / not_ready) and per-check results
        """
        checks = {
            "dedup_store": await self._check_backend(self.dedup.health_check, "dedup_store"),
            "lead_store": await self._check_backend(self.leads.health_check, "lead_store"),
            "disk_space": self._check_disk_space(),
            "memory": self._check_memory(),
        }
        overall_status = "not_ready" if any(c["status"] == "error" for c in checks.values()) else "ready"

        return {
            "status": overall_status,
            "service": self.service_name,
            "version": self.version,
            "timestamp": _timestamp(),
            "checks": checks,
        }

    async def _check_backend(self, check, name: str) -> Dict[str, Any]:
        start = time.time()
        try:
            healthy = await check()
        except Exception as e:
            logger.warning("health.backend_failed", backend=name, error=str(e))
            return {"status": "error", "error": str(e)}

        if not healthy:
            return {"status": "error", "error": f"{name} unreachable"}
        return {"status": "ok", "latency_ms": round((time.time() - start) * 1000, 2)}

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)
        """
        try:
            disk = psutil.disk_usage("/")
            available_gb = disk.free / (1024**3)

            if available_gb < threshold_gb:
                status = "error"
            elif available_gb < threshold_gb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_gb": round(available_gb, 2),
                "total_gb": round(disk.total / (1024**3), 2),
                "used_percent": disk.percent,
            }

        except Exception as e:
            logger.warning("health.disk_failed", error=str(e))
            return {"status": "error", "error": str(e)}

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)
        """
        try:
            memory = psutil.virtual_memory()
            available_mb = memory.available / (1024**2)

            if available_mb < threshold_mb:
                status = "error"
            elif available_mb < threshold_mb * 2:
                status = "warning"
            else:
                status = "ok"

            return {
                "status": status,
                "available_mb": round(available_mb, 2),
                "total_mb": round(memory.total / (1024**2), 2),
                "used_percent": memory.percent,
            }

        except Exception as e:
            logger.warning("health.memory_failed", error=str(e))
            return {"status": "error", "error": str(e)}

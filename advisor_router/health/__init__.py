from advisor_router.health.failover import FailoverController
from advisor_router.health.monitor import HealthMonitor

__all__ = ["FailoverController", "HealthMonitor"]

"""Health check endpoints for liveness and readiness probes."""

from typing import Any

from dependency_injector.wiring import Provide, inject
from flask import Blueprint, jsonify

from jikji.collection.scheduler import Scheduler, SchedulerState
from jikji.utils.lifecycle_coordinator import LifecycleCoordinatorProtocol

health_bp = Blueprint("health", __name__, url_prefix="/health")


@health_bp.route("/healthz", methods=["GET"])
def healthz() -> Any:
    """Liveness probe; the process answers, so it is alive."""
    return jsonify({"status": "alive", "ready": True}), 200


@health_bp.route("/readyz", methods=["GET"])
@inject
def readyz(
    scheduler: Scheduler = Provide["scheduler"],
    lifecycle_coordinator: LifecycleCoordinatorProtocol = Provide["lifecycle_coordinator"],
) -> Any:
    """Readiness probe.

    Ready while the scheduler is running. Degraded jobs are reported but
    do not make the exporter unready, since their stale values are still
    served.
    """
    jobs = scheduler.job_health()
    degraded = sorted(name for name, health in jobs.items() if health != "healthy")

    if lifecycle_coordinator.is_shutting_down():
        status, ready = "shutting down", False
    elif scheduler.state != SchedulerState.RUNNING:
        status, ready = scheduler.state.value, False
    else:
        status, ready = "ready", True

    body = {
        "status": status,
        "ready": ready,
        "jobs": len(jobs),
        "degraded": degraded,
    }
    return jsonify(body), 200 if ready else 503

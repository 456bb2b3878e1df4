from fastapi import HTTPException, status
from fastapi.requests import HTTPConnection

from vitalview.modules.monitoring.service import MonitoringService


def get_monitoring(connection: HTTPConnection) -> MonitoringService:
    """Return the pipeline built in the lifespan; works for HTTP and WebSocket routes."""
    service: MonitoringService | None = getattr(connection.app.state, "monitoring", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Monitoring service is not ready",
        )
    return service

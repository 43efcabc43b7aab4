from fastapi import APIRouter

from credit_server.api.routers import credits, health, mqtt, telemetry


def create_api_router(prefix: str = "") -> APIRouter:
    router = APIRouter(prefix=prefix)
    router.include_router(credits.router, prefix="/credits", tags=["碳积分"])
    router.include_router(mqtt.router, prefix="/mqtt", tags=["MQTT"])
    router.include_router(telemetry.router, prefix="/telemetry", tags=["遥测"])
    router.include_router(health.router, prefix="/health", tags=["健康检查"])
    return router


__all__ = [
    "create_api_router",
]

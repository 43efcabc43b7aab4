from . import credits, health, mqtt, telemetry

__all__ = ["credits", "health", "mqtt", "telemetry"]

from .telemetry import TelemetryService, get_telemetry

__all__ = ["TelemetryService", "get_telemetry"]

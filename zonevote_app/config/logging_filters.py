import logging

HEALTH_ENDPOINT_PATHS: tuple[str, ...] = ("/healthz", "/readyz")


class HealthEndpointFilter(logging.Filter):
    """Drop successful health probe access lines; keep failing probes visible."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if any(path in message for path in HEALTH_ENDPOINT_PATHS):
            return " 200 " not in message
        return True

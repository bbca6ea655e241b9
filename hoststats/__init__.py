"""Host telemetry and physical-drive snapshot capture."""

from hoststats.aggregator import StatsAggregator, capture_snapshot
from hoststats.config import AppConfig, load_config
from hoststats.models import StatsSnapshot
from hoststats.schema import validate_payload

__all__ = [
    "AppConfig",
    "StatsAggregator",
    "StatsSnapshot",
    "capture_snapshot",
    "load_config",
    "validate_payload",
]

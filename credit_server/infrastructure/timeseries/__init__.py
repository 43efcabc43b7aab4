"""Time-series store implementations."""

from .influx import InfluxTimeSeriesStore

__all__ = ["InfluxTimeSeriesStore"]

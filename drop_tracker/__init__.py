"""RuneMetrics snapshot and drop tracker."""

__version__ = "0.1.0"

"""Library catalog and lending tracker."""

__version__ = "0.1.0"

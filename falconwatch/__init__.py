"""falconwatch — continuous enhancement and security-monitoring engine."""

__version__ = "0.1.0"

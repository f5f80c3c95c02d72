"""Lead synchronization service for Meta Lead Ads."""

__version__ = "1.0.0"

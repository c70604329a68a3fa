"""AI-gated on-chain auto trading."""

__version__ = "0.1.0"

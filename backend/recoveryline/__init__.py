"""RecoveryLine: post-surgical recovery timeline and conversational task engine."""

__version__ = "0.1.0"

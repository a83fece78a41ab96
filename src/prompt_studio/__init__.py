"""prompt-studio: AI prompt designer with streaming dual-channel replies and versioned stories."""

__version__ = "0.1.0"

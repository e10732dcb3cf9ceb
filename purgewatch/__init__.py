"""purgewatch: health diagnostics for a CloudFlare cache-tag purge integration."""

__version__ = "0.1.0"

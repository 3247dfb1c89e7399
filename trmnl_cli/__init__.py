"""trmnl-cli: send HTML or JSON content to TRMNL e-ink displays via webhooks."""

__version__ = "0.1.0"

"""Server-side conversion tracking for landing-page leads."""

__version__ = "1.0.0"

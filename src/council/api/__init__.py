"""Council HTTP API."""

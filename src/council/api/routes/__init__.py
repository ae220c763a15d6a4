"""Council API routes."""

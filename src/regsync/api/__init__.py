"""HTTP API for RegSync."""

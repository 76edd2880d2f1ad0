"""HTTP API for Darknova farm order management."""

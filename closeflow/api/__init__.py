"""HTTP API for closeflow."""

"""HTTP API for business scanners."""

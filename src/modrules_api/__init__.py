"""HTTP API over the module index."""

"""Application layer: gateway services and the HTTP API."""

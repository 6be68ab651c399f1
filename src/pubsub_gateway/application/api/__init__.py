"""HTTP API: routes, models, middleware and dependencies."""

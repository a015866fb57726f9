"""HTTP API routers, schemas and services."""

"""NEDA HTTP server: Starlette app, endpoints and session tokens."""

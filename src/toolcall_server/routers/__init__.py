"""API routers for toolcall-server endpoints."""

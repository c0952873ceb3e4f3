"""
MCP backend service.

Wires the shared FastAPI scaffold with the request pipeline (identity,
tenant resolution, per-tenant admission control) and message bus handlers.
"""

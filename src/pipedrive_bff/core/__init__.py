"""Core logic: Pipedrive client, pagination, stage lookup, scoring and models.

This module is framework-agnostic. It has no dependency on MCP, Starlette,
or any server framework.
"""

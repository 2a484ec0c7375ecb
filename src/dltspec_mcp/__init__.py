"""MCP server exposing the dltspec document pipeline."""

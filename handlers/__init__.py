"""
Domain handlers for the MCP server.
"""

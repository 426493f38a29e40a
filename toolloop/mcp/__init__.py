"""MCP servers as an extension tool table."""

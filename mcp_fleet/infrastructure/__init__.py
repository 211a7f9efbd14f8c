"""Infrastructure: process launching, the stdio JSON-RPC client, MCP channel and event bus."""

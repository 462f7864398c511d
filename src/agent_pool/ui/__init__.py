"""Command-line surface for agent-pool."""

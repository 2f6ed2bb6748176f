"""CLI command groups for haproxy-assist."""

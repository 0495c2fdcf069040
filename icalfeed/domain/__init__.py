"""Feed aggregation services."""

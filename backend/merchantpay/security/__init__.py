"""Authorization policies."""

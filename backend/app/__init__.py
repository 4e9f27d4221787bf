"""Marketing assistant chat backend."""

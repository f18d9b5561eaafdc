"""In-memory schedule snapshot, calendar resolution and queries."""

"""SQLite storage for inference jobs."""

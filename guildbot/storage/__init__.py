"""SQLite persistence: connection, schema and repository functions."""

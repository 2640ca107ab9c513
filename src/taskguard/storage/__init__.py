"""SQLite persistence for tasks, credits and agent health."""

"""SQLite persistence for jobs and prompts."""

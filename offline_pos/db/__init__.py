"""Local database setup."""

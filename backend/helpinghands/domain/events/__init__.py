"""Event participation domain."""

"""Session and activity audit tracking."""

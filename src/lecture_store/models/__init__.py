"""Entity models for the lecture store."""

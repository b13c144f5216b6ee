"""Fee policy loading and validation."""

"""Fee analytics — statistical helpers and period reports."""

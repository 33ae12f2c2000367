"""CloudSync worker service."""

"""Domain objects and PyDAL table definitions."""

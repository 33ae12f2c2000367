"""CloudSync - multi-cloud resource inventory and IAM permission sync."""

__version__ = "1.0.0"

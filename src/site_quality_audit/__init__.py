"""Site Quality Audit - batch orchestration of publisher site audits."""

__version__ = "0.1.0"

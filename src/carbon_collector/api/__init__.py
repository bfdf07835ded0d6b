"""carbon_collector.api — Operator HTTP surface over the task scheduler."""

from carbon_collector.api.app import create_app

__all__ = ["create_app"]

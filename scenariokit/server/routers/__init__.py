"""
Router initialization module.

Exports all API routers for the Scenario Toolkit backend.
"""
from scenariokit.server.routers import scenarios

__all__ = [
    "scenarios",
]

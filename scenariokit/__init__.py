# ============================================================================
# scenariokit/__init__.py
# Scenario Toolkit
# ============================================================================
#
# PURPOSE:
# Runs "scenarios" (named, self-contained configurations of one Python
# program) in one of three ways: a plain run, a debug run, or a run inside
# a detached screen session. Each can optionally be elevated with sudo.
#
# PACKAGE LAYOUT:
# - base/: configuration, profiles, persisted state, the host interface
# - engine/: command-line handling, elevation, debug bridge, process launching
# - cortex/: event bus for last-execution change notifications
# - server/: FastAPI front-end for editors
# - cli.py: console front-end
#
# ============================================================================

__version__ = "0.4.0"

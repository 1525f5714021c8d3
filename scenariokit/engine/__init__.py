# ============================================================================
# scenariokit/engine/__init__.py
# Execution Engine
# ============================================================================
#
# MODULES IN THIS PACKAGE:
# - cmdline.py: tokenizer for run templates and extra flags
# - invocation.py: template -> program/module invocation, RunContext
# - elevation.py: sudo session check, password validation, argv wrapping
# - debug_bridge.py: debugpy listener for elevated debug runs
# - launcher.py: process spawning and the shared output log
# - last_execution.py: newest run folder across all scenarios
# - orchestrator.py: the exposed operations and strategy dispatch
#
# WORKFLOW:
# scenario path -> RunContext -> strategy -> launcher -> exit -> refresh
#
# ============================================================================

# ============================================================================
# scenariokit/server/__init__.py
# Server Package - FastAPI front-end
# ============================================================================
#
# KEY ENDPOINTS:
# - POST /scenarios/run, /scenarios/debug, /scenarios/detach
# - POST /scenarios/toggle-sudo, /scenarios/flags
# - GET /scenarios/last-execution, /scenarios/output, /scenarios/messages
#
# ============================================================================

"""
Shellmate - Test Suite

Unit tests for the shellmate_core library: error classification, the
toolset and its registry, project structure extraction, backend adapters,
the orchestration loop and sessions.
"""

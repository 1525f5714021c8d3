"""Foundational pieces: configuration, program profiles, persisted state and the host interface."""

"""Event bus carrying run lifecycle and last-execution notifications."""

"""Realtime conversation sync engine and message composer."""

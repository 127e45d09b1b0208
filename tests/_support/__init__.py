"""Shared helpers for the jobspine test suite."""

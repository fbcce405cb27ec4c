"""Execution of selected quotes: pre-flight, submission, and status tracking."""

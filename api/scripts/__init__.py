"""Operator scripts for maintenance tasks."""

"""Logging and metrics for node-label-inheritor."""

"""Maintenance mode services."""

"""Notification channels for final run reports."""

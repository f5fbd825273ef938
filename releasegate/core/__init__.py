"""Core value types and protocols shared by every releasegate layer."""

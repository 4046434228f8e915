"""Chip register classifiers and pitch detection."""

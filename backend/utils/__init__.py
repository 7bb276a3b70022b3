"""Shared helpers: errors, logging, money and time."""

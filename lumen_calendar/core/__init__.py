"""Exceptions, event store and live update channel."""

"""Common Lambda utilities shared by the relay handlers.

Provides the typed handler base class along with logging and metrics mixins.
"""

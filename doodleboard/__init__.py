"""Doodleboard: community doodle wall backend."""

__version__ = "1.0.0"

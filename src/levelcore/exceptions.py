"""Error taxonomy for the leveling core."""

from __future__ import annotations


class LevelCoreError(Exception):
    """Base class for every error raised by levelcore."""


class ConfigurationError(LevelCoreError):
    """Invalid formula type, parameter, expression or level table."""


class DescriptorError(ConfigurationError):
    """A stored formula descriptor could not be decoded."""


class StoreError(LevelCoreError):
    """The storage collaborator failed to read or write."""


class MigrationError(LevelCoreError):
    """A formula migration was aborted. Stored XP and metadata are unchanged."""

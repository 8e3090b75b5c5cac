"""
Exception types raised by the command engine.
"""


class BotError(Exception):
    """Base exception for engine errors."""
    pass


class DuplicateRegistrationError(BotError):
    """A command key, structured name, component or retry prefix was registered twice."""

    def __init__(self, table: str, key: str):
        self.table = table
        self.key = key
        super().__init__(f"Duplicate {table}: {key}")


class ConfigError(BotError):
    """Configuration could not be read at all."""
    pass

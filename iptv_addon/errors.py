"""
Exceptions raised inside the addon.
Remote fetch failures are reported as FetchError values instead.
"""


class ParseError(Exception):
    """Raised when custom overlay content cannot be parsed."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message

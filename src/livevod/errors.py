"""
Error taxonomy shared by the edge handlers.

ObjectNotFound is benign on the read path ("not ready yet"), TransportError
covers network and service failures, ParseError covers malformed records and
playlists.
"""


class LiveVodError(Exception):
    """Base class for livevod errors."""


class ObjectNotFound(LiveVodError):
    """The requested key does not exist in the container."""

    def __init__(self, key: str, container: str):
        super().__init__(f"{container}/{key} not found")
        self.key = key
        self.container = container


class TransportError(LiveVodError):
    """The object store or live control plane could not be reached."""


class ParseError(LiveVodError):
    """A stored record or playlist could not be interpreted."""

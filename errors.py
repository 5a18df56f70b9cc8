# errors.py


class StreamResponseError(Exception):
    """Base class for errors raised by stream responses and their processors."""


class ResponseConstructionError(StreamResponseError):
    """A processor could not be attached to the input connection.

    By the time this is raised the connection has already been closed.
    """


class ProcessorError(StreamResponseError, ValueError):
    """Unknown format or malformed payload."""


class UnsupportedOperationError(StreamResponseError):
    pass

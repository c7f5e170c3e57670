from typing import Optional


class ElasticsearchError(Exception):
    """
    Base error for every request made against an Elasticsearch cluster.

    `status` is the HTTP status code when a response was received, otherwise None.
    """

    def __init__(self, status: Optional[int], message: str) -> None:
        super().__init__(status, message)
        self.status = status
        self.message = message

    def is_404(self) -> bool:
        return self.status == 404

    def __str__(self) -> str:
        if self.status is None:
            return self.message
        return f"HTTP {self.status} {self.message}"


class TransportError(ElasticsearchError):
    """The request never reached the server (DNS, refused connection, timeout)."""

    def __init__(self, message: str) -> None:
        super().__init__(None, message)


class RemoteError(ElasticsearchError):
    """The server answered with a non-2xx status."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(status, message)


class DecodeError(ElasticsearchError):
    """The server answered 2xx but the body did not have the expected shape."""


class TransportInitError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(f"Unable to initialize the HTTP transport: {message}")


def is_not_found(error: Exception) -> bool:
    return isinstance(error, ElasticsearchError) and error.is_404()

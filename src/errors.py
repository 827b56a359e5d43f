"""Exception types shared across the service."""


class ConfigurationError(RuntimeError):
    """A required external endpoint or API key is missing. Fatal at startup."""


class ExternalFetchError(Exception):
    """A collaborator returned a non-success response or the request failed.

    Raised inside the collaborator clients and recovered at their public
    boundary as "no data".
    """

    def __init__(self, source: str, detail: str, status: int | None = None) -> None:
        self.source = source
        self.detail = detail
        self.status = status
        prefix = f"{source} returned {status}" if status is not None else f"{source} failed"
        super().__init__(f"{prefix}: {detail}")

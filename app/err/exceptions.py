"""Simple wrappers for the failure states a scrape of the ONT can end in"""


class OntScrapeError(Exception):
    """Base for anything that can go wrong while talking to / parsing the ONT."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message, status_code, payload)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def __str__(self):
        if self.status_code is not None:
            return f"{self.message} (status={self.status_code})"
        return str(self.message)


class AuthenticationFailure(OntScrapeError):
    """Exception for a failed token fetch or rejected credentials."""


class TransportFailure(OntScrapeError):
    """Exception for connection errors / timeouts on any request."""


class PageNotFound(OntScrapeError):
    """Exception for when every candidate path for a page was rejected."""


class ExtractionFailure(OntScrapeError):
    """Exception for a missing or malformed pseudo-constructor invocation."""

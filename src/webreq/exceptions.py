from __future__ import annotations

# Base Exceptions


class WebReqError(Exception):
    """Base exception used by this module."""

    pass


class WebReqWarning(Warning):
    """Base warning used by this module."""

    pass


# Leaf Exceptions


class LocationValueError(ValueError, WebReqError):
    """Raised when there is something wrong with a given URL input."""

    pass


class LocationParseError(LocationValueError):
    """Raised when parse_url or similar fails to parse the URL input."""

    def __init__(self, location: str) -> None:
        message = f"Failed to parse: {location}"
        super().__init__(message)

        self.location = location


class URLSchemeUnknown(LocationValueError):
    """Raised when a URL input has an unsupported scheme."""

    def __init__(self, scheme: str | None):
        message = f"Not supported URL scheme {scheme}"
        super().__init__(message)

        self.scheme = scheme


class ProxySchemeUnknown(URLSchemeUnknown):
    """The ``proxy`` option does not use a supported scheme."""

    def __init__(self, scheme: str | None) -> None:
        super().__init__(scheme)
        if scheme is None:
            message = "Proxy URL had no scheme, should start with http:// or https://"
        else:
            message = f"Proxy URL had unsupported scheme {scheme}, should use http:// or https://"
        self.args = (message,)


class CertificateError(WebReqError):
    """Raised when the client certificate material can't be loaded."""

    pass


class CertificateConflictWarning(WebReqWarning):
    """Warned when both a PFX bundle and a separate cert/key pair are given."""

    pass

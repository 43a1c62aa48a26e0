"""Transport-level errors raised by tracker clients.

These cover talking to the tracker at all; a reachable tracker returning
unusable data raises ``ProviderContractError`` instead.
"""


class ClientError(Exception):
    """Base exception for tracker client failures."""


class ClientConnectionError(ClientError):
    """The tracker could not be reached or the request broke off."""


class AuthenticationError(ClientError):
    """The tracker rejected the configured credentials."""


class ResourceNotFoundError(ClientError):
    """The tracker has no such issue or endpoint."""


class CaptchaError(ClientError):
    """The tracker demands a CAPTCHA login before accepting API calls."""


class ApiError(ClientError):
    """The tracker answered with an error status."""

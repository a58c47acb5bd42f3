"""Custom exceptions for Email Gateway."""


class EmailGatewayError(Exception):
    """Base exception for all Email Gateway errors."""


class ConfigurationError(EmailGatewayError):
    """Exception raised for configuration related errors."""


class AuthenticationError(EmailGatewayError):
    """Exception raised when the OAuth login exchange fails."""


class InvalidArgumentError(EmailGatewayError):
    """Exception raised for malformed or contradictory request parameters."""


class GmailAPIError(EmailGatewayError):
    """Exception raised for Gmail API related errors."""


class AuthExpiredError(GmailAPIError):
    """Exception raised when Google rejects the stored credentials."""


class MessageNotFoundError(GmailAPIError):
    """Exception raised when Gmail reports that a message does not exist."""


class RemoteTimeoutError(GmailAPIError):
    """Exception raised when a Gmail operation exceeds its deadline."""

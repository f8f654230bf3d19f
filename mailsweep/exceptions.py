"""
Exception taxonomy for mailsweep.

Every exception carries an optional context dict that is rendered into the
string form, so a log line or CLI message shows what was being processed.
"""

from typing import Dict, Any, Optional


class MailsweepError(Exception):
    """Base class for all mailsweep errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        base_message = super().__str__()
        if self.context:
            context_info = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_message} (context: {context_info})"
        return base_message


class ConfigError(MailsweepError):
    """Missing credentials or master key. Fatal, never retried."""


class AuthError(MailsweepError):
    """Provider authorization or token refresh failed."""


class AccountInactiveError(MailsweepError):
    """The account has been deactivated."""


class NotFoundError(MailsweepError):
    """A referenced record does not exist."""


class TransientNetworkError(MailsweepError):
    """A network or provider failure that is worth retrying."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.status_code = status_code


class BlockedError(MailsweepError):
    """The unsubscribe page presented a CAPTCHA, login wall or verification step."""

    def __init__(self, message: str, artifacts: Optional[list] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.artifacts = list(artifacts or [])


class AmbiguousResultError(MailsweepError):
    """No confirmation pattern matched after the unsubscribe action."""

    def __init__(self, message: str, artifacts: Optional[list] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context)
        self.artifacts = list(artifacts or [])


class ClassificationError(MailsweepError):
    """The AI service did not produce a usable answer within the retry budget."""


class VaultError(MailsweepError):
    """Base class for credential vault failures."""


class IntegrityError(VaultError):
    """Sealed credential failed authentication (tampered or wrong key)."""


class FormatError(VaultError):
    """Sealed credential is not a well-formed blob."""

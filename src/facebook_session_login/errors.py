from __future__ import annotations


class FacebookLoginError(RuntimeError):
    """
    Base class for every failure raised by this package.
    """


class WaitTimeoutError(FacebookLoginError):
    """
    Raised when a bounded poll elapses before its condition holds.

    Kept distinct from generic errors so callers can decide whether a miss is optional (swallow) or required
    (propagate).
    """

    def __init__(self, message: str, *, timeout_ms: int = 0) -> None:
        super().__init__(message)
        self.timeout_ms = timeout_ms


class LoginFailedError(FacebookLoginError):
    """
    Raised when the post-flow authentication check is negative.
    """


class FieldWriteError(FacebookLoginError):
    """
    Raised when a required form field could not be set after both write strategies.
    """


class CookieSourceError(FacebookLoginError):
    """
    Raised for a malformed cookie file or cookie input. The orchestrator logs it and treats the source as empty.
    """


class BrowserLaunchError(FacebookLoginError):
    """
    Raised when Playwright could not produce a browser session.
    """

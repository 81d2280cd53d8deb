"""
Facebook mobile-site login automation: cookie reuse, credential login with an optional
authenticator-app challenge, and verification of the resulting session.
"""

from .browser.login import FacebookLoginClient, LoginStage, login_facebook
from .config import AppConfig, load_config
from .errors import (
    BrowserLaunchError,
    CookieSourceError,
    FacebookLoginError,
    FieldWriteError,
    LoginFailedError,
    WaitTimeoutError,
)
from .models import DEFAULT_COOKIES_FILE, AuthResult, Cookie, CookieHeader, CookieRecords, LoginRequest

__all__ = [
    "AppConfig",
    "AuthResult",
    "BrowserLaunchError",
    "Cookie",
    "CookieHeader",
    "CookieRecords",
    "CookieSourceError",
    "DEFAULT_COOKIES_FILE",
    "FacebookLoginClient",
    "FacebookLoginError",
    "FieldWriteError",
    "LoginFailedError",
    "LoginRequest",
    "LoginStage",
    "WaitTimeoutError",
    "load_config",
    "login_facebook",
]

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import CookieSourceError


# Playwright (and the persisted snapshot) use -1 for cookies that expire with the browser session.
SESSION_COOKIE_EXPIRES: float = -1


class Cookie(BaseModel):
    """
    Canonical cookie record. Field aliases match the persisted JSON snapshot and the browser's own naming.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    value: str
    domain: str
    path: str = "/"
    secure: bool = False
    http_only: bool = Field(default=False, alias="httpOnly")
    same_party: bool = Field(default=False, alias="sameParty")
    expires: float = SESSION_COOKIE_EXPIRES

    @property
    def is_session(self) -> bool:
        return self.expires <= 0

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)

    def to_playwright(self) -> dict[str, Any]:
        # Playwright rejects unknown keys (sameParty) and treats a missing `expires` as a session cookie.
        out: dict[str, Any] = {
            "name": self.name,
            "value": self.value,
            "domain": self.domain,
            "path": self.path,
            "secure": self.secure,
            "httpOnly": self.http_only,
        }
        if not self.is_session:
            out["expires"] = self.expires
        return out


class AuthResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    authenticated: bool
    user_id: Optional[str] = Field(default=None, alias="userID")
    profile_name: Optional[str] = Field(default=None, alias="profileName")
    cookies: list[Cookie] = Field(default_factory=list)


@dataclass(frozen=True)
class CookieRecords:
    """Loosely typed cookie-like records (browser export, extension dump, previous snapshot)."""

    records: tuple[Mapping[str, Any], ...]


@dataclass(frozen=True)
class CookieHeader:
    """A `Cookie:` header style string, e.g. `"c_user=1; xs=abc"`."""

    text: str


CookieSource = Union[CookieRecords, CookieHeader]


def cookie_source_from(raw: object) -> Optional[CookieSource]:
    """
    Classify a caller-supplied cookie input at the boundary.

    Accepts a sequence of mappings, a header string, or an already-tagged source. Returns None for empty input.
    """
    if raw is None:
        return None
    if isinstance(raw, (CookieRecords, CookieHeader)):
        return raw
    if isinstance(raw, str):
        return CookieHeader(text=raw) if raw.strip() else None
    if isinstance(raw, Sequence):
        records: list[Mapping[str, Any]] = []
        for item in raw:
            if not isinstance(item, Mapping):
                raise CookieSourceError(f"Cookie records must be mappings (got {type(item).__name__})")
            records.append(item)
        return CookieRecords(records=tuple(records)) if records else None
    raise CookieSourceError(f"Unsupported cookie input type: {type(raw).__name__}")


class _DefaultCookiesFile:
    """Sentinel: no cookies file given, fall back to the configured default path."""

    def __repr__(self) -> str:
        return "DEFAULT_COOKIES_FILE"


DEFAULT_COOKIES_FILE = _DefaultCookiesFile()


@dataclass(frozen=True)
class LoginRequest:
    """
    Per-invocation input of the login flow.

    `cookies_file=None` explicitly disables persistence. Leaving it at `DEFAULT_COOKIES_FILE` uses the configured
    default path (which may itself be unset).
    """

    email: str
    password: str = field(repr=False)
    two_fa_secret: Optional[str] = field(default=None, repr=False)
    existing_cookies: object = None
    cookies_file: Union[str, None, _DefaultCookiesFile] = DEFAULT_COOKIES_FILE

    def resolve_cookies_file(self, default: Optional[str]) -> Optional[str]:
        if isinstance(self.cookies_file, _DefaultCookiesFile):
            return default or None
        return self.cookies_file or None

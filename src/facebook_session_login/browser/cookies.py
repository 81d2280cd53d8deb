from __future__ import annotations

import json
import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence

from pydantic import ValidationError

from ..config import SiteConfig
from ..errors import CookieSourceError, WaitTimeoutError
from ..models import SESSION_COOKIE_EXPIRES, Cookie, CookieHeader, CookieRecords, CookieSource
from .primitives import poll_until
from .session import BrowserSession


logger = logging.getLogger(__name__)


def _positive_number(value: object) -> Optional[float]:
    # bool is an int subclass; `True` is not a timestamp.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if value > 0 else None


def normalize_cookies(raw: Optional[Iterable[Mapping[str, Any]]], *, default_domain: str) -> list[Cookie]:
    """
    Map loosely typed cookie records to canonical Cookies, preserving order.

    Records without a name (`name` or `key`), without a value, or with a wrong-typed field are dropped.
    `expires` wins over `expirationDate`; anything else means a session cookie.
    """
    out: list[Cookie] = []
    for c in raw or []:
        if not isinstance(c, Mapping):
            continue
        name = c.get("name") or c.get("key")
        value = c.get("value")
        if not name or value is None or value == "":
            continue

        expires = _positive_number(c.get("expires"))
        if expires is None:
            expires = _positive_number(c.get("expirationDate"))

        try:
            cookie = Cookie(
                name=str(name),
                value=str(value),
                domain=c.get("domain") or default_domain,
                path=c.get("path") or "/",
                secure=bool(c.get("secure")),
                http_only=bool(c.get("httpOnly")),
                same_party=bool(c.get("sameParty") or False),
                expires=expires if expires is not None else SESSION_COOKIE_EXPIRES,
            )
        except ValidationError as e:
            logger.debug("Dropping malformed cookie record %r: %s", name, e)
            continue
        out.append(cookie)
    return out


def parse_cookie_header(text: Optional[str], *, default_domain: str) -> list[Cookie]:
    """
    Parse `"k1=v1; k2=v2"` into session Cookies on the default domain and path `/`.
    """
    if not text or not isinstance(text, str):
        return []
    records: list[dict[str, Any]] = []
    for part in (s.strip() for s in text.split(";")):
        if not part or "=" not in part:
            continue
        name, value = part.split("=", 1)
        records.append({"name": name.strip(), "value": value.strip(), "domain": default_domain, "path": "/"})
    return normalize_cookies(records, default_domain=default_domain)


def _serialize(cookies: Sequence[Cookie]) -> str:
    return json.dumps([c.to_record() for c in cookies], indent=2, ensure_ascii=False)


class CookieStore:
    """
    Cookie normalization, persistence of the JSON snapshot, and transfer to/from a live browser session.
    """

    def __init__(self, site: SiteConfig) -> None:
        self.site = site

    # --- normalization -------------------------------------------------------------------------

    def normalize(self, raw: Optional[Iterable[Mapping[str, Any]]]) -> list[Cookie]:
        return normalize_cookies(raw, default_domain=self.site.cookie_domain)

    def parse_cookie_header_string(self, text: Optional[str]) -> list[Cookie]:
        return parse_cookie_header(text, default_domain=self.site.cookie_domain)

    def from_source(self, source: Optional[CookieSource]) -> list[Cookie]:
        if source is None:
            return []
        if isinstance(source, CookieHeader):
            return self.parse_cookie_header_string(source.text)
        if isinstance(source, CookieRecords):
            return self.normalize(source.records)
        raise CookieSourceError(f"Unsupported cookie source: {type(source).__name__}")

    def identity_cookie(self, cookies: Iterable[Cookie]) -> Optional[Cookie]:
        for c in cookies:
            if c.name == self.site.identity_cookie:
                return c
        return None

    # --- live session ----------------------------------------------------------------------------

    async def apply(self, session: BrowserSession, cookies: Sequence[Cookie]) -> None:
        if not cookies:
            return
        # One batch: a partially applied set is not a state we want to reason about.
        await session.add_cookies([c.to_playwright() for c in cookies])

    async def discard(self, session: BrowserSession) -> None:
        await session.clear_cookies()

    async def read_all(self, session: BrowserSession) -> list[Cookie]:
        raw = await session.cookies([self.site.cookie_origin])
        return self.normalize(raw)

    async def wait_for_identity_cookie(
        self,
        session: BrowserSession,
        *,
        total_ms: int = 10_000,
        step_ms: int = 250,
    ) -> bool:
        async def _has_identity() -> bool:
            try:
                return self.identity_cookie(await self.read_all(session)) is not None
            except Exception:
                logger.debug("Reading cookies failed while waiting for %s.", self.site.identity_cookie, exc_info=True)
                return False

        try:
            await poll_until(_has_identity, timeout_ms=total_ms, step_ms=step_ms, label=f"wait {self.site.identity_cookie}")
        except WaitTimeoutError:
            return False
        return True

    # --- snapshot file ---------------------------------------------------------------------------

    def persist(self, path: Optional[str], cookies: Sequence[Cookie]) -> bool:
        """
        Overwrite the snapshot at `path` with the full cookie set. A falsy path is an explicit opt-out.

        Returns True if the file was written (an identical existing snapshot is left untouched).
        """
        if not path:
            return False
        p = Path(path)
        text = _serialize(cookies)
        try:
            if p.exists() and p.read_text(encoding="utf-8") == text:
                logger.debug("Cookie snapshot unchanged; not rewriting %s", p)
                return False
        except OSError:
            logger.debug("Could not compare existing cookie snapshot %s", p, exc_info=True)

        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(text, encoding="utf-8")
        logger.info("Saved %d cookies to %s", len(cookies), p)
        self._backup(p)
        return True

    def load(self, path: Optional[str]) -> list[Cookie]:
        """
        Read and normalize a snapshot. Missing file -> []. A corrupt file is quarantined and the last-known-good
        backup restored when possible; otherwise CookieSourceError is raised.
        """
        if not path:
            return []
        p = Path(path)
        if not p.exists():
            return []

        try:
            return self.normalize(self._read_records(p))
        except CookieSourceError as e:
            logger.warning("Cookie file %s is invalid; ignoring and attempting restore from backup. (%s)", p, e)
            self._quarantine(p)

        bak = self._backup_path(p)
        if bak.exists():
            try:
                records = self._read_records(bak)
                shutil.copy2(bak, p)
                logger.warning("Restored cookie file from backup: %s", bak)
                return self.normalize(records)
            except CookieSourceError:
                logger.debug("Cookie backup %s is invalid too.", bak, exc_info=True)
        raise CookieSourceError(f"Cookie file {p} is not a JSON array of cookie records")

    @staticmethod
    def _read_records(p: Path) -> list[Mapping[str, Any]]:
        try:
            data = json.loads(p.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise CookieSourceError(f"unreadable cookie file {p}: {e}") from e
        if not isinstance(data, list):
            raise CookieSourceError(f"cookie file {p} must hold a JSON array")
        return [c for c in data if isinstance(c, Mapping)]

    @staticmethod
    def _backup_path(p: Path) -> Path:
        return p.with_name(p.name + ".bak")

    def _backup(self, p: Path) -> None:
        try:
            shutil.copy2(p, self._backup_path(p))
        except OSError:
            logger.debug("Failed to write cookie snapshot backup for %s", p, exc_info=True)

    @staticmethod
    def _quarantine(p: Path) -> None:
        try:
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
            p.replace(p.with_name(f"{p.name}.corrupt-{stamp}"))
        except OSError:
            logger.debug("Failed to quarantine file=%s", p, exc_info=True)

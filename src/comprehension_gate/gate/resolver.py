from __future__ import annotations

import asyncio
import logging
import re
from typing import Awaitable, Optional, TypeVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from comprehension_gate.config.models import GateSettings
from comprehension_gate.core.errors import CollaboratorError, RequiredSourceMissing
from comprehension_gate.core.models import (
    ActionDescriptor,
    EditorialSource,
    EffectiveSource,
    MediaOcrSource,
    NoSource,
    SelfTextSource,
    UrlSource,
)
from comprehension_gate.services.interfaces import EditorialLookup, PreviewFetcher, ReferenceLookup

logger = logging.getLogger(__name__)

T = TypeVar("T")

_URL_PATTERN = re.compile(r"https?://[^\s]+")
_CONTROL_MARKER_PATTERN = re.compile(r"\[SOURCE:[\d,\s]+\]")
_EDITORIAL_PREFIXES = ("editorial://", "focus://daily/")
_TRACKING_PARAMS = frozenset({"fbclid", "gclid", "dclid", "msclkid", "igshid", "twclid", "ttclid"})
_PLATFORM_DOMAINS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("youtube", ("youtube.com", "youtu.be")),
    ("spotify", ("spotify.com",)),
    ("twitter", ("twitter.com", "x.com")),
    ("linkedin", ("linkedin.com",)),
    ("instagram", ("instagram.com",)),
    ("facebook", ("facebook.com", "fb.com", "fb.watch")),
    ("tiktok", ("tiktok.com",)),
    ("threads", ("threads.net",)),
)


def extract_first_url(text: str) -> Optional[str]:
    if not text:
        return None
    match = _URL_PATTERN.search(text)
    return match.group(0) if match else None


def is_editorial_address(address: str) -> bool:
    return address.startswith(_EDITORIAL_PREFIXES)


def editorial_id_from(address: str) -> str:
    for prefix in _EDITORIAL_PREFIXES:
        if address.startswith(prefix):
            return address[len(prefix) :].strip("/")
    raise ValueError(f"Not an editorial address: {address}")


def is_http_url(address: str) -> bool:
    try:
        parts = urlsplit(address.strip())
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


def normalize_url(raw_url: str) -> str:
    """
    Normalize a URL for lookups: https, no www., lowercase host, no fragment,
    no trailing slash, tracking params removed and the rest sorted.

    Path case is preserved. Unparseable input is returned trimmed.
    """
    raw = raw_url.strip()
    try:
        parts = urlsplit(raw)
        port = parts.port
    except ValueError:
        return raw
    if not parts.scheme or not parts.hostname:
        return raw

    host = parts.hostname.lower()
    if host.startswith("www."):
        host = host[4:]
    netloc = f"{host}:{port}" if port else host

    path = parts.path.rstrip("/") or "/"
    query = sorted(
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.lower().startswith("utm_") and key.lower() not in _TRACKING_PARAMS
    )
    return urlunsplit(("https", netloc, path, urlencode(query), ""))


def detect_platform(url: str) -> Optional[str]:
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return None
    for platform, domains in _PLATFORM_DOMAINS:
        for domain in domains:
            if host == domain or host.endswith("." + domain):
                return platform
    return None


def strip_control_markers(body: str) -> str:
    return _CONTROL_MARKER_PATTERN.sub("", body).strip()


class SourceResolver:
    """
    Determines the single effective source an action is about.

    Priority: direct URL, then the first URL down the quote chain, then OCR text of
    attached media, then editorial copy, then the user's own text. Any failing hop is
    treated as "no source here" so resolution always terminates with a value.
    """

    def __init__(
        self,
        *,
        previews: PreviewFetcher,
        references: ReferenceLookup,
        editorials: EditorialLookup,
        settings: GateSettings,
    ) -> None:
        self._previews = previews
        self._references = references
        self._editorials = editorials
        self._settings = settings

    async def resolve(self, descriptor: ActionDescriptor, *, require_source: bool = False) -> EffectiveSource:
        source = await self._resolve(descriptor)
        logger.info(
            "gate.source_resolved kind=%s actor_user_id=%s require_source=%s",
            source.kind,
            descriptor.actor_user_id,
            require_source,
        )
        if require_source and isinstance(source, (NoSource, SelfTextSource)):
            raise RequiredSourceMissing(
                f"Action requires a source but none could be resolved. actor_user_id={descriptor.actor_user_id}"
            )
        return source

    async def _resolve(self, descriptor: ActionDescriptor) -> EffectiveSource:
        direct = descriptor.direct_source_url
        if not direct and self._settings.detect_inline_urls:
            direct = extract_first_url(descriptor.user_text)

        editorial_address: Optional[str] = None
        if direct:
            if is_editorial_address(direct):
                editorial_address = direct
            elif is_http_url(direct):
                return await self._url_source(direct)
            else:
                logger.warning("gate.unsupported_source_address address=%s", direct)
        elif descriptor.quoted_reference_id:
            url, editorial_address = await self._walk_quote_chain(descriptor.quoted_reference_id)
            if url:
                return await self._url_source(url)

        media = descriptor.attached_media
        if media is not None and media.confidence_status == "done":
            text = media.text.strip()
            if len(text) >= self._settings.min_ocr_chars:
                return MediaOcrSource(media_id=media.id, text=text)
            logger.info("gate.media_text_too_short media_id=%s chars=%s", media.id, len(text))

        if editorial_address:
            editorial = await self._editorial_source(editorial_address)
            if editorial is not None:
                return editorial

        if descriptor.user_text.strip():
            return SelfTextSource(text=descriptor.user_text)
        return NoSource()

    async def _walk_quote_chain(self, reference_id: str) -> tuple[Optional[str], Optional[str]]:
        """
        Follow quoted references until a hop carries a source address.

        Returns (url, editorial_address); at most one of them is set. The walk is
        bounded by max_chain_depth and stops on the first revisited id.
        """
        visited: set[str] = set()
        current: Optional[str] = reference_id
        for depth in range(self._settings.max_chain_depth):
            if current is None:
                return None, None
            if current in visited:
                logger.warning("gate.quote_chain_cycle reference_id=%s depth=%s", current, depth)
                return None, None
            visited.add(current)

            action = await self._guarded(
                "get_referenced_action",
                self._references.get_referenced_action(current),
                log_context=f"reference_id={current}",
            )
            if action is None:
                return None, None

            address = (action.direct_source_url or "").strip()
            if address:
                if is_editorial_address(address):
                    return None, address
                if is_http_url(address):
                    logger.debug("gate.quote_chain_hit reference_id=%s depth=%s", current, depth)
                    return address, None

            current = action.quoted_reference_id

        logger.info("gate.quote_chain_depth_exhausted reference_id=%s max_depth=%s", reference_id, self._settings.max_chain_depth)
        return None, None

    async def _url_source(self, url: str) -> UrlSource:
        normalized = normalize_url(url)
        preview = await self._guarded(
            "fetch_preview",
            self._previews.fetch_preview(normalized),
            log_context=f"url={normalized}",
        )
        platform = detect_platform(normalized)
        if preview is None:
            return UrlSource(url=normalized, platform=platform)
        return UrlSource(
            url=normalized,
            title=preview.title,
            image=preview.image,
            platform=preview.platform or platform,
            content=preview.content or preview.summary or preview.excerpt,
        )

    async def _editorial_source(self, address: str) -> Optional[EditorialSource]:
        editorial_id = editorial_id_from(address)
        content = await self._guarded(
            "get_editorial",
            self._editorials.get_editorial(editorial_id),
            log_context=f"editorial_id={editorial_id}",
        )
        if content is None:
            return None
        body = strip_control_markers(content.body)
        if len(body) < self._settings.min_editorial_chars:
            logger.info("gate.editorial_body_too_short editorial_id=%s chars=%s", editorial_id, len(body))
            return None
        return EditorialSource(id=editorial_id, title=content.title, body=body)

    async def _guarded(self, operation: str, call: Awaitable[Optional[T]], *, log_context: str) -> Optional[T]:
        try:
            return await asyncio.wait_for(call, timeout=self._settings.resolution_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning(
                "gate.resolution_hop_timeout operation=%s %s timeout_seconds=%s",
                operation,
                log_context,
                self._settings.resolution_timeout_seconds,
            )
        except CollaboratorError as exc:
            logger.warning("gate.resolution_hop_failed operation=%s %s error=%s", operation, log_context, exc)
        except Exception:
            logger.exception("gate.resolution_hop_error operation=%s %s", operation, log_context)
        return None

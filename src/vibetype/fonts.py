from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Sequence, Set
from urllib.parse import quote

import requests

from .config import LoaderSettings
from .models import FontVariant

logger = logging.getLogger(__name__)

DEFAULT_CSS_BASE_URL = "https://fonts.googleapis.com/css2"
FONT_FILE_PATTERN = re.compile(r"url\((['\"]?)(?P<url>[^)'\"]+)\1\)")
# Google serves woff2 only to user agents it recognizes as modern browsers.
USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)

OnLoaded = Callable[[], None]
StylesheetFetcher = Callable[[str], Awaitable[str]]


def font_variant_key(variant: FontVariant) -> str:
    return f"{variant.family}:{variant.weight}:{variant.style}"


@dataclass(slots=True)
class FontRequest:
    variant: FontVariant
    characters: str


@dataclass(slots=True)
class _PendingBatch:
    variant: FontVariant
    chars: Dict[str, None] = field(default_factory=dict)
    callbacks: List[OnLoaded] = field(default_factory=list)


def build_font_url(
    font_requests: Sequence[FontRequest], base_url: str = DEFAULT_CSS_BASE_URL
) -> str:
    """Build one css2 URL covering every variant and the union of their characters."""
    all_chars: Dict[str, None] = {}
    family_params: List[str] = []
    seen: Set[str] = set()
    for request in font_requests:
        for char in request.characters:
            all_chars.setdefault(char, None)
        key = font_variant_key(request.variant)
        if key in seen:
            continue
        seen.add(key)
        family = request.variant.family.replace(" ", "+")
        if request.variant.style == "italic":
            family_params.append(f"family={family}:ital,wght@1,{request.variant.weight}")
        else:
            family_params.append(f"family={family}:wght@{request.variant.weight}")

    parts = list(family_params)
    unique_chars = "".join(all_chars)
    if unique_chars:
        parts.append(f"text={quote(unique_chars, safe='')}")
    parts.append("display=swap")
    return f"{base_url}?{'&'.join(parts)}"


def build_font_string(variant: FontVariant, size_px: int = 16) -> str:
    """CSS ``font`` shorthand for the variant."""
    style = "italic " if variant.style == "italic" else ""
    return f'{style}{variant.weight} {size_px}px "{variant.family}"'


class RequestsStylesheetFetcher:
    """
    Download a css2 stylesheet and the font files it references.

    Blocking ``requests`` calls run in a worker thread. Any HTTP error
    propagates to the loader, which still releases the waiting callbacks.
    """

    def __init__(self, timeout: float = 15.0, fetch_font_files: bool = True) -> None:
        self._timeout = timeout
        self._fetch_font_files = fetch_font_files

    async def __call__(self, url: str) -> str:
        return await asyncio.to_thread(self._fetch, url)

    def _fetch(self, url: str) -> str:
        headers = {"User-Agent": USER_AGENT}
        with requests.Session() as session:
            response = session.get(url, headers=headers, timeout=self._timeout)
            response.raise_for_status()
            css = response.text
            if self._fetch_font_files:
                for match in FONT_FILE_PATTERN.finditer(css):
                    font_response = session.get(
                        match.group("url"), headers=headers, timeout=self._timeout
                    )
                    font_response.raise_for_status()
        return css


class FontAssetLoader:
    """
    Batch, deduplicate and track glyph loading per font variant.

    Requests arriving within the batch window are coalesced into a single
    stylesheet fetch; characters already confirmed for a variant contribute
    nothing to the fetch. Callbacks always fire, even when the fetch fails.
    """

    def __init__(
        self,
        settings: LoaderSettings | None = None,
        fetcher: StylesheetFetcher | None = None,
    ) -> None:
        self._settings = settings or LoaderSettings()
        self._fetcher: StylesheetFetcher = fetcher or RequestsStylesheetFetcher(
            timeout=self._settings.request_timeout
        )
        self._loaded_chars: Dict[str, Set[str]] = {}
        self._pending: Dict[str, _PendingBatch] = {}
        self._fetched_urls: Set[str] = set()
        self._stylesheets: Dict[str, str] = {}
        self._timer: asyncio.TimerHandle | None = None
        self._inflight: Set[asyncio.Task[None]] = set()

    @property
    def fetched_urls(self) -> Set[str]:
        return set(self._fetched_urls)

    @property
    def stylesheets(self) -> Dict[str, str]:
        return dict(self._stylesheets)

    @property
    def busy(self) -> bool:
        return self._timer is not None or bool(self._inflight)

    def loaded_chars(self, variant: FontVariant) -> Set[str]:
        return set(self._loaded_chars.get(font_variant_key(variant), ()))

    def is_loaded(self, variant: FontVariant, text: str) -> bool:
        loaded = self._loaded_chars.get(font_variant_key(variant), set())
        return all(char in loaded for char in text)

    def request_font(self, variant: FontVariant, text: str, on_loaded: OnLoaded) -> None:
        """Ensure every character of ``text`` is loaded for ``variant``, then call back."""
        key = font_variant_key(variant)
        batch = self._pending.get(key)
        if batch is None:
            batch = self._pending[key] = _PendingBatch(variant=variant)
        for char in self._unloaded(variant, text):
            batch.chars.setdefault(char, None)
        batch.callbacks.append(on_loaded)

        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._settings.batch_delay_ms / 1000.0, self._flush)

    async def preload(self, variant: FontVariant, text: str) -> None:
        loop = asyncio.get_running_loop()
        done: asyncio.Future[None] = loop.create_future()

        def _resolve() -> None:
            if not done.done():
                done.set_result(None)

        self.request_font(variant, text, _resolve)
        await done

    async def wait_idle(self) -> None:
        """Wait until no batch is pending and no fetch is in flight."""
        while self.busy:
            if self._inflight:
                await asyncio.gather(*list(self._inflight), return_exceptions=True)
            else:
                await asyncio.sleep(self._settings.batch_delay_ms / 1000.0)

    def _unloaded(self, variant: FontVariant, text: str) -> Iterable[str]:
        loaded = self._loaded_chars.get(font_variant_key(variant), set())
        return (char for char in dict.fromkeys(text) if char not in loaded)

    def _mark_loaded(self, variant: FontVariant, chars: Iterable[str]) -> None:
        self._loaded_chars.setdefault(font_variant_key(variant), set()).update(chars)

    def _flush(self) -> None:
        self._timer = None
        if not self._pending:
            return
        batches = list(self._pending.values())
        self._pending.clear()

        callbacks = [callback for batch in batches for callback in batch.callbacks]
        font_requests = [
            FontRequest(variant=batch.variant, characters="".join(batch.chars))
            for batch in batches
            if batch.chars
        ]
        if not font_requests:
            _fire(callbacks)
            return

        url = build_font_url(font_requests, self._settings.css_base_url)
        if url in self._fetched_urls:
            _fire(callbacks)
            return
        self._fetched_urls.add(url)

        task = asyncio.ensure_future(self._load(url, font_requests, callbacks))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _load(
        self, url: str, font_requests: List[FontRequest], callbacks: List[OnLoaded]
    ) -> None:
        try:
            css = await self._fetcher(url)
        except Exception as exc:
            logger.warning("Font stylesheet failed to load (%s): %s", url, exc)
        else:
            self._stylesheets[url] = css
            for request in font_requests:
                self._mark_loaded(request.variant, request.characters)
            logger.debug(
                "Loaded %d font variant(s) from %s", len(font_requests), url
            )
        finally:
            _fire(callbacks)


def _fire(callbacks: Iterable[OnLoaded]) -> None:
    for callback in callbacks:
        try:
            callback()
        except Exception:
            logger.exception("Font loaded callback raised")

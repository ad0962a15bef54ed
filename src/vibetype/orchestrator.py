from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
from typing import Awaitable, Callable, Dict, List, Sequence, Set, Tuple

from .config import OrchestratorSettings
from .fonts import FontAssetLoader, font_variant_key
from .models import (
    FontVariant,
    InputState,
    Loading,
    Pending,
    ResolutionSource,
    Resolved,
    ResolvedPhrase,
    WordResolutionResult,
    WordState,
    WordToken,
)
from .resolver import is_capitalized
from .state import (
    INSTANT_REQUEST_ID,
    Event,
    FontLoaded,
    SetPhraseGroup,
    SetPhraseLoading,
    SetText,
    UpdateVariant,
    WordError,
    WordLoading,
    WordResolved,
    create_initial_state,
    reduce,
)
from .tokenization import IdFactory, new_token_id

logger = logging.getLogger(__name__)

WordResolver = Callable[[str], Awaitable[WordResolutionResult]]
PhraseResolver = Callable[[Sequence[str]], Awaitable[List[ResolvedPhrase]]]
PhraseRegenerator = Callable[[Sequence[str]], Awaitable[WordResolutionResult]]
Listener = Callable[[InputState], None]

ClientCacheKey = Tuple[str, bool]


def new_request_id() -> str:
    return secrets.token_urlsafe(8)


class InputOrchestrator:
    """
    Drive resolution of the words in an editable text.

    All handlers must be called from the event loop thread. Text changes are
    reconciled immediately; known words resolve synchronously from the client
    cache and the rest are processed once typing pauses for the debounce
    window. Phrase detection results are dropped when the text changed while
    detection was running (generation check). Individual word results are
    guarded only by their request id, so typing elsewhere never discards them.
    """

    def __init__(
        self,
        word_resolver: WordResolver | None,
        phrase_resolver: PhraseResolver | None = None,
        font_loader: FontAssetLoader | None = None,
        *,
        settings: OrchestratorSettings | None = None,
        word_regenerator: WordResolver | None = None,
        phrase_regenerator: PhraseRegenerator | None = None,
        initial_text: str = "",
        id_factory: IdFactory = new_token_id,
        request_id_factory: Callable[[], str] = new_request_id,
    ) -> None:
        self._word_resolver = word_resolver
        self._phrase_resolver = phrase_resolver
        self._font_loader = font_loader
        self._settings = settings or OrchestratorSettings()
        self._word_regenerator = word_regenerator or word_resolver
        self._phrase_regenerator = phrase_regenerator
        self._id_factory = id_factory
        self._request_id_factory = request_id_factory

        self._state = create_initial_state(initial_text, id_factory)
        self._listeners: List[Listener] = []
        self._client_cache: Dict[ClientCacheKey, FontVariant] = {}
        self._tasks: Dict[str, asyncio.Task[None]] = {}
        self._debounce: asyncio.TimerHandle | None = None
        self._cycles: Set[asyncio.Task[None]] = set()
        self._generation = 0
        # word id -> variant key of the outstanding font request
        self._font_requests: Dict[str, str] = {}

    @property
    def state(self) -> InputState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener`` with the new state after every change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, event: Event) -> InputState:
        previous = self._state
        self._state = reduce(previous, event, self._id_factory)
        if self._state is not previous:
            for listener in list(self._listeners):
                listener(self._state)
            self._sync_fonts()
        return self._state

    # Handlers exposed to the rendering layer.

    def set_text(self, text: str) -> None:
        if text == self._state.raw_text:
            return
        self.dispatch(SetText(text))
        self._generation += 1

        live_ids = {word.token.id for word in self._state.words}
        for word_id in [word_id for word_id in self._tasks if word_id not in live_ids]:
            logger.debug("Cancelling resolution for removed word %s", word_id)
            self._tasks.pop(word_id).cancel()
        for word_id in [key for key in self._font_requests if key not in live_ids]:
            del self._font_requests[word_id]

        self._apply_client_cache()

        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        if self._word_resolver is None or not self._state.pending():
            return
        loop = asyncio.get_running_loop()
        self._debounce = loop.call_later(
            self._settings.debounce_ms / 1000.0,
            self._start_cycle,
            self._generation,
            self._state.words,
        )

    def mark_font_loaded(self, word_id: str) -> None:
        self.dispatch(FontLoaded(word_id))

    def set_phrase_group(
        self,
        word_ids: Sequence[str],
        variant: FontVariant,
        source: ResolutionSource = "llm",
    ) -> str:
        phrase_group_id = self._id_factory()
        self.dispatch(
            SetPhraseGroup(
                word_ids=frozenset(word_ids),
                phrase_group_id=phrase_group_id,
                variant=variant,
                source=source,
            )
        )
        return phrase_group_id

    def set_phrase_loading(self, word_ids: Sequence[str]) -> str:
        request_id = self._request_id_factory()
        self.dispatch(SetPhraseLoading(word_ids=frozenset(word_ids), request_id=request_id))
        return request_id

    def update_variant(
        self, word_id: str, variant: FontVariant, source: ResolutionSource = "llm"
    ) -> None:
        self.dispatch(UpdateVariant(word_id=word_id, variant=variant, source=source))

    async def reroll_word(self, word_id: str) -> None:
        """Re-resolve a single word outside the pending pipeline."""
        word = self._state.find(word_id)
        if word is None or self._word_regenerator is None:
            return
        request_id = self._request_id_factory()
        self.dispatch(WordLoading(word_id=word_id, request_id=request_id))
        await self._resolve(
            word.token, request_id, self._word_regenerator, clear_group=True
        )

    async def reroll_phrase(self, word_ids: Sequence[str]) -> None:
        """Re-resolve a phrase group; the result applies only if still current."""
        words = [self._state.find(word_id) for word_id in word_ids]
        members = [word for word in words if word is not None]
        if not members or self._phrase_regenerator is None:
            return
        request_id = self.set_phrase_loading([word.token.id for word in members])
        try:
            result = await self._phrase_regenerator(
                [word.token.normalized for word in members]
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Phrase re-roll failed: %s", exc)
            for word in members:
                self.dispatch(WordError(word.token.id, request_id, str(exc)))
            return
        still_current = all(
            isinstance(current.resolution, Loading)
            and current.resolution.request_id == request_id
            for current in (self._state.find(word.token.id) for word in members)
            if current is not None
        )
        if still_current:
            self.set_phrase_group(
                [word.token.id for word in members], result.variant, result.source
            )

    async def wait_idle(self) -> None:
        """Wait until no debounce, detection, resolution or font fetch is outstanding."""
        while True:
            if self._cycles:
                await asyncio.gather(*list(self._cycles), return_exceptions=True)
            elif self._tasks:
                await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)
            elif self._debounce is not None:
                await asyncio.sleep(self._settings.debounce_ms / 4000.0)
            elif self._font_loader is not None and self._font_loader.busy:
                await self._font_loader.wait_idle()
            else:
                break

    async def aclose(self) -> None:
        """Cancel every outstanding timer and task."""
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        pending = [*self._tasks.values(), *self._cycles]
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        self._cycles.clear()

    # Internals.

    def _apply_client_cache(self) -> None:
        for word in self._state.pending():
            variant = self._client_cache.get(_client_key(word.token))
            if variant is None:
                continue
            self.dispatch(
                WordResolved(
                    word_id=word.token.id,
                    request_id=INSTANT_REQUEST_ID,
                    variant=variant,
                    source="cache",
                )
            )

    def _start_cycle(self, generation: int, captured: Tuple[WordState, ...]) -> None:
        self._debounce = None
        task = asyncio.ensure_future(self._run_cycle(generation, captured))
        self._cycles.add(task)

        def _done(finished: "asyncio.Task[None]") -> None:
            self._cycles.discard(finished)
            if not finished.cancelled() and finished.exception() is not None:
                logger.error("Resolution cycle failed: %s", finished.exception())

        task.add_done_callback(_done)

    async def _run_cycle(
        self, generation: int, captured: Tuple[WordState, ...]
    ) -> None:
        grouped: Set[str] = set()

        if self._phrase_resolver is not None and len(captured) >= 2:
            try:
                phrases = await self._phrase_resolver(
                    [word.token.normalized for word in captured]
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error("Phrase detection failed: %s", exc)
                phrases = []

            if generation != self._generation:
                logger.debug("Stale phrase detection (generation %s), discarding", generation)
                return
            self._apply_phrases(phrases, captured, grouped)

        if generation != self._generation:
            logger.debug("Stale cycle after phrase detection, discarding")
            return

        for word in captured:
            if word.token.id in grouped:
                continue
            current = self._state.find(word.token.id)
            if current is None or not isinstance(current.resolution, Pending):
                continue
            self._start_word(current.token)

    def _apply_phrases(
        self,
        phrases: Sequence[ResolvedPhrase],
        captured: Tuple[WordState, ...],
        grouped: Set[str],
    ) -> None:
        for phrase in phrases:
            members = captured[phrase.start_index : phrase.end_index + 1]
            ids = [word.token.id for word in members]
            if not ids or any(word_id in grouped for word_id in ids):
                continue
            has_pending = False
            for word_id in ids:
                current = self._state.find(word_id)
                if current is not None and isinstance(current.resolution, Pending):
                    has_pending = True
                    break
            if not has_pending:
                continue
            grouped.update(ids)
            logger.info(
                "Phrase %r (%s) -> %s",
                " ".join(phrase.words),
                phrase.source,
                phrase.variant.family,
            )
            self.set_phrase_group(ids, phrase.variant, phrase.source)

    def _start_word(self, token: WordToken) -> None:
        if self._word_resolver is None:
            return
        request_id = self._request_id_factory()
        self.dispatch(WordLoading(word_id=token.id, request_id=request_id))
        task = asyncio.ensure_future(self._resolve(token, request_id, self._word_resolver))
        self._tasks[token.id] = task

        def _done(finished: "asyncio.Task[None]") -> None:
            if self._tasks.get(token.id) is finished:
                del self._tasks[token.id]

        task.add_done_callback(_done)

    async def _resolve(
        self,
        token: WordToken,
        request_id: str,
        resolver: WordResolver,
        clear_group: bool = False,
    ) -> None:
        try:
            result = await resolver(token.raw)
        except asyncio.CancelledError:
            logger.debug("Resolution of %r aborted", token.normalized)
            return
        except Exception as exc:
            logger.warning("Resolution of %r failed: %s", token.normalized, exc)
            message = str(exc) or type(exc).__name__
            self.dispatch(
                WordError(word_id=token.id, request_id=request_id, message=message)
            )
            return
        current = self._state.find(token.id)
        accepted = (
            current is not None
            and isinstance(current.resolution, Loading)
            and current.resolution.request_id == request_id
        )
        self.dispatch(
            WordResolved(
                word_id=token.id,
                request_id=request_id,
                variant=result.variant,
                source=result.source,
                clear_group=clear_group,
            )
        )
        # Stale results and stand-in variants never reach the client cache.
        if accepted and not result.fallback:
            self._client_cache[_client_key(token)] = result.variant

    def _sync_fonts(self) -> None:
        if self._font_loader is None:
            return
        for word in self._state.words:
            resolution = word.resolution
            if word.font_loaded or not isinstance(resolution, Resolved):
                continue
            variant_key = font_variant_key(resolution.variant)
            if self._font_requests.get(word.token.id) == variant_key:
                continue
            self._font_requests[word.token.id] = variant_key
            self._font_loader.request_font(
                resolution.variant,
                word.token.raw,
                self._font_callback(word.token.id, variant_key),
            )

    def _font_callback(self, word_id: str, variant_key: str) -> Callable[[], None]:
        def on_loaded() -> None:
            if self._font_requests.get(word_id) == variant_key:
                del self._font_requests[word_id]
            current = self._state.find(word_id)
            if current is None or not isinstance(current.resolution, Resolved):
                return
            # The variant may have been re-rolled while its glyphs were loading.
            if font_variant_key(current.resolution.variant) != variant_key:
                return
            self.mark_font_loaded(word_id)

        return on_loaded


def _client_key(token: WordToken) -> ClientCacheKey:
    return (token.normalized, is_capitalized(token.raw))

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable, FrozenSet, Sequence, Union

from .models import (
    Error,
    FontVariant,
    InputState,
    Loading,
    Pending,
    Resolved,
    ResolutionSource,
    WordState,
)
from .tokenization import (
    IdFactory,
    create_initial_word_state,
    new_token_id,
    reconcile_words,
    tokenize,
)

logger = logging.getLogger(__name__)

# Marks a synchronous client-cache hit; only honored while the word is still pending.
INSTANT_REQUEST_ID = "instant"


@dataclass(frozen=True, slots=True)
class SetText:
    text: str


@dataclass(frozen=True, slots=True)
class WordLoading:
    word_id: str
    request_id: str


@dataclass(frozen=True, slots=True)
class WordResolved:
    word_id: str
    request_id: str
    variant: FontVariant
    source: ResolutionSource
    # Set by manual re-rolls: the word leaves any phrase group it belonged to.
    clear_group: bool = False


@dataclass(frozen=True, slots=True)
class WordError:
    word_id: str
    request_id: str
    message: str


@dataclass(frozen=True, slots=True)
class FontLoaded:
    word_id: str


@dataclass(frozen=True, slots=True)
class SetPhraseGroup:
    word_ids: FrozenSet[str]
    phrase_group_id: str
    variant: FontVariant
    source: ResolutionSource


@dataclass(frozen=True, slots=True)
class SetPhraseLoading:
    word_ids: FrozenSet[str]
    request_id: str


@dataclass(frozen=True, slots=True)
class UpdateVariant:
    word_id: str
    variant: FontVariant
    source: ResolutionSource


Event = Union[
    SetText,
    WordLoading,
    WordResolved,
    WordError,
    FontLoaded,
    SetPhraseGroup,
    SetPhraseLoading,
    UpdateVariant,
]


def create_initial_state(
    text: str = "", id_factory: IdFactory = new_token_id
) -> InputState:
    tokens = tokenize(text, id_factory)
    return InputState(
        raw_text=text, words=tuple(create_initial_word_state(t) for t in tokens)
    )


def reduce(
    state: InputState, event: Event, id_factory: IdFactory = new_token_id
) -> InputState:
    """Return the state that results from applying ``event`` to ``state``."""
    if isinstance(event, SetText):
        # Ids are drawn only for tokens that do not match an existing word.
        tokens = tokenize(event.text, _unassigned_id)
        words = reconcile_words(state.words, tokens, id_factory)
        return InputState(raw_text=event.text, words=tuple(words))

    if isinstance(event, WordLoading):
        return _update(
            state,
            lambda word: word.token.id == event.word_id,
            lambda word: replace(word, resolution=Loading(event.request_id)),
        )

    if isinstance(event, WordResolved):
        resolved = Resolved(variant=event.variant, source=event.source)
        return _update(
            state,
            lambda word: word.token.id == event.word_id
            and _accepts(word, event.request_id),
            lambda word: replace(
                word,
                resolution=resolved,
                font_loaded=False,
                phrase_group_id=None if event.clear_group else word.phrase_group_id,
            ),
        )

    if isinstance(event, WordError):
        failed = Error(event.message)
        return _update(
            state,
            lambda word: word.token.id == event.word_id
            and _accepts(word, event.request_id, allow_instant=False),
            lambda word: replace(word, resolution=failed),
        )

    if isinstance(event, FontLoaded):
        return _update(
            state,
            lambda word: word.token.id == event.word_id and not word.font_loaded,
            lambda word: replace(word, font_loaded=True),
        )

    if isinstance(event, SetPhraseGroup):
        resolved = Resolved(variant=event.variant, source=event.source)
        return _update(
            state,
            lambda word: word.token.id in event.word_ids,
            lambda word: replace(
                word,
                resolution=resolved,
                phrase_group_id=event.phrase_group_id,
                font_loaded=False,
            ),
        )

    if isinstance(event, SetPhraseLoading):
        loading = Loading(event.request_id)
        return _update(
            state,
            lambda word: word.token.id in event.word_ids,
            lambda word: replace(word, resolution=loading),
        )

    if isinstance(event, UpdateVariant):
        resolved = Resolved(variant=event.variant, source=event.source)
        return _update(
            state,
            lambda word: word.token.id == event.word_id,
            lambda word: replace(
                word, resolution=resolved, phrase_group_id=None, font_loaded=False
            ),
        )

    raise TypeError(f"Unknown event type: {type(event).__name__}")


def _unassigned_id() -> str:
    return ""


def _accepts(word: WordState, request_id: str, allow_instant: bool = True) -> bool:
    resolution = word.resolution
    if allow_instant and request_id == INSTANT_REQUEST_ID:
        return isinstance(resolution, Pending)
    if isinstance(resolution, Loading) and resolution.request_id == request_id:
        return True
    logger.debug(
        "Discarding stale result for word=%s request=%s (state=%s)",
        word.token.id,
        request_id,
        resolution.status,
    )
    return False


def _update(
    state: InputState,
    predicate: Callable[[WordState], bool],
    transform: Callable[[WordState], WordState],
) -> InputState:
    changed = False
    words: list[WordState] = []
    for word in state.words:
        if predicate(word):
            words.append(transform(word))
            changed = True
        else:
            words.append(word)
    if not changed:
        return state
    return replace(state, words=tuple(words))


def word_ids(words: Sequence[WordState]) -> FrozenSet[str]:
    return frozenset(word.token.id for word in words)

from __future__ import annotations

import re
import secrets
from collections import defaultdict, deque
from dataclasses import replace
from typing import Callable, Deque, Dict, List, Sequence

from .models import PENDING, WordState, WordToken

WHITESPACE_RUN_PATTERN = re.compile(r"\S+", re.UNICODE)
# Anything that is not a letter, digit, apostrophe or hyphen (``\w`` admits "_").
STRIP_PATTERN = re.compile(r"[^\w'\-]|_", re.UNICODE)

IdFactory = Callable[[], str]


def new_token_id() -> str:
    """Return a short random identifier for a freshly created token."""
    return secrets.token_urlsafe(8)


def normalize_word(raw: str) -> str:
    """Lowercase ``raw`` and strip everything except letters, digits, ' and -."""
    return STRIP_PATTERN.sub("", raw.lower())


def tokenize(text: str, id_factory: IdFactory = new_token_id) -> List[WordToken]:
    """Split text on whitespace runs, dropping tokens that are pure punctuation."""
    tokens: List[WordToken] = []
    for match in WHITESPACE_RUN_PATTERN.finditer(text):
        raw = match.group()
        normalized = normalize_word(raw)
        if not normalized:
            continue
        tokens.append(
            WordToken(
                id=id_factory(),
                raw=raw,
                normalized=normalized,
                position=len(tokens),
            )
        )
    return tokens


def create_initial_word_state(token: WordToken) -> WordState:
    return WordState(token=token, resolution=PENDING)


def reconcile_words(
    existing: Sequence[WordState],
    new_tokens: Sequence[WordToken],
    id_factory: IdFactory | None = None,
) -> List[WordState]:
    """
    Carry identity and resolution state from ``existing`` onto ``new_tokens``.

    Existing states are pooled by normalized text; each new token takes the
    oldest unclaimed state with the same text, so repeated words are matched
    first-seen-first-matched and never bound twice. When ``id_factory`` is
    given, unmatched tokens receive their id from it; otherwise they keep the
    id assigned by ``tokenize``.
    """
    pools: Dict[str, Deque[WordState]] = defaultdict(deque)
    for word in existing:
        pools[word.token.normalized].append(word)

    reconciled: List[WordState] = []
    for token in new_tokens:
        pool = pools.get(token.normalized)
        if pool:
            previous = pool.popleft()
            reconciled.append(
                replace(
                    previous,
                    token=replace(
                        previous.token, raw=token.raw, position=token.position
                    ),
                )
            )
        elif id_factory is not None:
            reconciled.append(create_initial_word_state(replace(token, id=id_factory())))
        else:
            reconciled.append(create_initial_word_state(token))
    return reconciled

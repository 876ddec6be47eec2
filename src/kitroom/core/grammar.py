"""
Rule-based interpreter that maps a transcript onto a Command.

This is the guaranteed fallback path: it is deterministic, needs no network
and never raises. Patterns are tried in a fixed priority order and the first
match wins:

    1. turn_in         give away / hand over / turn in / pass / donate
    2. delete          "delete|remove <N> <edition> jerseys"
    3. delete          delete / remove all / clear
    4. add             add / plus / increase / more / additional / put / place / create
    5. remove          remove / subtract / minus / decrease / take away
    6. set             set|update ... to <N>   ("size to <N>" rewrites the size)
    7. order           order / reorder / buy
    8. laundry_return  arrived / returned / back / received / delivered + from laundry
    9. unknown

Number words are rewritten to digits first. The homophones "to"/"too" (2),
"for" (4) and "ate" (8) are rewritten only when they sit directly before an
edition or "jersey(s)"; this is a heuristic and misparses are possible.
"""

from __future__ import annotations

import re
from typing import Callable

from loguru import logger

from .commands import Command, CommandType, Edition, SET_SIZE_NOTE, normalize_edition

NUMBER_WORDS: dict[str, int] = {
    "zero": 0,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
    "thirteen": 13,
    "fourteen": 14,
    "fifteen": 15,
    "sixteen": 16,
    "seventeen": 17,
    "eighteen": 18,
    "nineteen": 19,
    "twenty": 20,
}

HOMOPHONES: dict[str, int] = {"to": 2, "too": 2, "for": 4, "ate": 8}

_EDITION_WORD = r"(?:icons?|statements?|associations?|city|cities)"

_NUMBER_WORD_RE = re.compile(r"\b(" + "|".join(NUMBER_WORDS) + r")\b", re.IGNORECASE)
_HOMOPHONE_RE = re.compile(
    r"(?<!\d )\b(to|too|for|ate)\b(?=\s+(?:" + _EDITION_WORD[3:-1] + r"|jerseys?)\b)",
    re.IGNORECASE,
)

_EDITION_RE = re.compile(r"\b(" + _EDITION_WORD[3:-1] + r")\b")
_SIZE_RE = re.compile(r"\bsize\s+(\d+)\b")
_SIZE_TO_RE = re.compile(r"\bsize\s+to\s+(\d+)\b")
_TO_NUMBER_RE = re.compile(r"\bto\s+(\d+)\b")
_NUMBER_RE = re.compile(r"\b(\d+)\b")
_SIZE_PREFIX_RE = re.compile(r"\bsize\s+(?:to\s+)?$")
_JERSEY_RE = re.compile(r"\bjerseys?\b")

_TURN_IN_RE = re.compile(
    r"\b(?:give away|gave away|given away|give|gave|hand(?:ed)? over|hand(?:ed)? out|"
    r"turn(?:ed)? in|turn(?:ed)? over|pass(?:ed)?|donate(?:d)?)\b"
)
_DIRECT_DELETE_RE = re.compile(r"\b(?:delete|remove)\s+(\d+)\s+(" + _EDITION_WORD[3:-1] + r")\s+jerseys?\b")
_GENERIC_DELETE_RE = re.compile(r"(?:^|\s)(?:delete|remove all|clear)(?:\s|$)")
_ADD_RE = re.compile(r"\b(?:add|plus|increase|more|additional|put|place|create)\b")
_REMOVE_RE = re.compile(r"\b(?:remove|subtract|minus|decrease|take away|takeaway)\b")
_SET_RE = re.compile(r"\b(?:set|update)\b")
_TO_RE = re.compile(r"\bto\b")
_ORDER_RE = re.compile(r"\b(?:order|reorder|buy)\b")
_LAUNDRY_VERB_RE = re.compile(r"\b(?:arrived|returned|back|received|delivered)\b")
_LAUNDRY_SOURCE_RE = re.compile(r"\bfrom\s+(?:the\s+)?(?:laundry|cleaners?|wash)\b")

_RECIPIENT_RE = re.compile(r"\bto\s+(.+)$", re.IGNORECASE)
_RECIPIENT_CUT_RE = re.compile(r"\s+(?:size|and|from|then|also)\b.*$", re.IGNORECASE)

_NAME = r"([a-z][a-z'.-]*(?:\s+[a-z][a-z'.-]*)?)"
_PLAYER_AFTER_VERB_RE = re.compile(r"\b(?:add|remove|set|delete|order)\s+" + _NAME)
_PLAYER_BEFORE_JERSEY_RE = re.compile(r"\b" + _NAME + r"\s+(?:" + _EDITION_WORD + r"\s+)?jerseys?\b")
_PLAYER_AFTER_PREP_RE = re.compile(r"\b(?:for|to)\s+" + _NAME)
_PLAYER_AFTER_FOR_RE = re.compile(r"\bfor\s+" + _NAME)

PLAYER_STOP_WORDS = frozenset(
    {
        "jersey", "jerseys", "size", "sizes", "edition", "editions",
        "icon", "icons", "statement", "statements", "association", "associations", "city", "cities",
        "to", "for", "of", "the", "a", "an", "all", "more", "some", "any", "new", "extra",
        "additional", "my", "our", "his", "her", "their", "these", "those", "them", "it",
        "add", "remove", "set", "update", "delete", "clear", "order", "reorder", "buy",
        "plus", "minus", "put", "place", "create", "take", "away", "give", "gave", "turn",
        "pass", "donate", "hand", "from", "in", "into", "inventory", "stock", "laundry",
        "cleaners", "wash", "back", "please", "and", "then", "also", "with", "on", "at",
    }
)

_MULTI_SPLIT_RE = re.compile(r"\s*(?:;|\band then\b|\band also\b|\bthen\b|\balso\b)\s*")


def normalize_transcript(transcript: str) -> str:
    """Lowercase a transcript and rewrite number words and homophones to digits."""
    return _normalize(transcript)[1]


def _normalize(transcript: str) -> tuple[str, str]:
    """
    Return (cased, lowered) versions of the transcript with numbers rewritten.

    Both strings share character offsets so spans found in the lowered text
    can be sliced out of the cased one to keep a player's capitalization.
    """
    text = " ".join(transcript.strip().split())
    text = _NUMBER_WORD_RE.sub(lambda m: str(NUMBER_WORDS[m.group(1).lower()]), text)
    text = _HOMOPHONE_RE.sub(lambda m: str(HOMOPHONES[m.group(1).lower()]), text)
    lowered = text.lower()
    if len(lowered) != len(text):
        return lowered, lowered
    return text, lowered


def _edition(text: str) -> Edition | None:
    match = _EDITION_RE.search(text)
    return normalize_edition(match.group(1)) if match else None


def _size(text: str) -> str | None:
    match = _SIZE_RE.search(text)
    return match.group(1) if match else None


def _quantity(text: str, default: int | None = 1) -> int | None:
    """First number in the text that is not a size."""
    for match in _NUMBER_RE.finditer(text):
        if _SIZE_PREFIX_RE.search(text[: match.start()]):
            continue
        return int(match.group(1))
    return default


def _clean_name(cased: str) -> str | None:
    tokens = cased.split()
    kept: list[str] = []
    for token in tokens:
        if token.lower() in PLAYER_STOP_WORDS:
            break
        kept.append(token)
    if not kept:
        return None
    name = " ".join(kept)
    return name.title() if name.islower() else name


def _player(cased: str, lowered: str, patterns: tuple[re.Pattern[str], ...] | None = None) -> str | None:
    """Best-effort player name extraction, skipping domain keywords."""
    for pattern in patterns or (_PLAYER_AFTER_VERB_RE, _PLAYER_BEFORE_JERSEY_RE, _PLAYER_AFTER_PREP_RE):
        for match in pattern.finditer(lowered):
            name = _clean_name(cased[match.start(1) : match.end(1)])
            if name:
                return name
    return None


def _recipient(cased: str) -> str | None:
    match = _RECIPIENT_RE.search(cased)
    if not match:
        return None
    recipient = _RECIPIENT_CUT_RE.sub("", match.group(1)).strip().rstrip(".!?,;:").strip()
    if not recipient or recipient.isdigit():
        return None
    return recipient


def _quantity_command(kind: CommandType, cased: str, lowered: str) -> Command:
    return Command(
        type=kind,
        player_name=_player(cased, lowered),
        edition=_edition(lowered),
        size=_size(lowered),
        quantity=_quantity(lowered),
    )


def _interpret(transcript: str) -> Command:
    cased, lowered = _normalize(transcript)
    if not lowered:
        return Command.unknown()

    turn_in = _TURN_IN_RE.search(lowered)
    if turn_in:
        tail = lowered[turn_in.end() :]
        if _quantity(tail, default=None) is not None or _EDITION_RE.search(tail) or _JERSEY_RE.search(tail):
            return Command(
                type=CommandType.TURN_IN,
                player_name=_player(cased, lowered, (_PLAYER_BEFORE_JERSEY_RE, _PLAYER_AFTER_FOR_RE)),
                edition=_edition(lowered),
                size=_size(lowered),
                quantity=_quantity(lowered),
                recipient=_recipient(cased),
            )

    direct = _DIRECT_DELETE_RE.search(lowered)
    if direct:
        return Command(
            type=CommandType.DELETE,
            player_name=_player(cased, lowered),
            edition=normalize_edition(direct.group(2)),
            size=_size(lowered),
            quantity=int(direct.group(1)),
        )

    if _GENERIC_DELETE_RE.search(lowered):
        return _quantity_command(CommandType.DELETE, cased, lowered)

    if _ADD_RE.search(lowered):
        return _quantity_command(CommandType.ADD, cased, lowered)

    if _REMOVE_RE.search(lowered):
        return _quantity_command(CommandType.REMOVE, cased, lowered)

    if _SET_RE.search(lowered) and _TO_RE.search(lowered):
        player = _player(cased, lowered)
        edition = _edition(lowered)
        size_to = _SIZE_TO_RE.search(lowered)
        if size_to:
            return Command(
                type=CommandType.SET,
                player_name=player,
                edition=edition,
                size=size_to.group(1),
                notes=SET_SIZE_NOTE,
            )
        target = _TO_NUMBER_RE.search(lowered)
        return Command(
            type=CommandType.SET,
            player_name=player,
            edition=edition,
            size=_size(lowered),
            target_quantity=int(target.group(1)) if target else 0,
        )

    if _ORDER_RE.search(lowered):
        return _quantity_command(CommandType.ORDER, cased, lowered)

    if _LAUNDRY_VERB_RE.search(lowered) and _LAUNDRY_SOURCE_RE.search(lowered):
        return Command(
            type=CommandType.LAUNDRY_RETURN,
            player_name=_player(cased, lowered, (_PLAYER_BEFORE_JERSEY_RE, _PLAYER_AFTER_FOR_RE)),
            edition=_edition(lowered),
            size=_size(lowered),
            quantity=_quantity(lowered),
        )

    return Command.unknown()


def interpret(transcript: str) -> Command:
    """
    Interpret a transcript as a single command.

    Never raises: anything that cannot be classified, including internal
    errors, yields an `unknown` command.
    """
    try:
        command = _interpret(transcript or "")
    except Exception as e:
        logger.exception("Grammar: failed to interpret {!r}: {}", transcript, e)
        return Command.unknown()
    logger.debug("Grammar: {!r} -> {}", transcript, command.to_dict())
    return command


def interpret_many(transcript: str) -> list[Command]:
    """
    Interpret a transcript that may describe several independent actions.

    The transcript is split on "then", "also", "and then", "and also" and ";".
    The split is used only when every fragment parses to a known command;
    otherwise the whole transcript is interpreted as one command.
    """
    fragments = [f for f in _MULTI_SPLIT_RE.split(transcript or "") if f.strip()]
    if len(fragments) > 1:
        commands = [interpret(fragment) for fragment in fragments]
        if all(not c.is_unknown for c in commands):
            return commands
    return [interpret(transcript)]


Interpreter = Callable[[str], list[Command]]

"""Text cleanup for raw transcripts.

``format_text`` runs the full pipeline, in this order:

1. ``cleanup_false_start`` - keep only the restart after a dash marker
2. ``remove_fillers`` - um/uh/hmm, "uh huh", pause-gated "you know", "i mean", "like"
3. ``collapse_repeated_phrases`` - "the the thing" -> "the thing"
4. ``remove_stutter_before_contraction`` - "i i'm" -> "i'm"
5. ``capitalize_i_forms`` - "i", "i'm", "i'll" -> "I", "I'm", "I'll"
6. ``fix_contractions`` - "dont" -> "don't"
7. ``capitalize_sentences``
8. trailing punctuation

``apply_replacements`` applies the user's dictionary and is meant to run on
the output of ``format_text``.

Most passes compare a token's *core*: the token with leading and trailing
non-alphanumeric characters (apostrophes excepted) stripped, lowercased. That
lets "like," and "um." match their bare forms.
"""

from __future__ import annotations

from typing import Iterable

from models import ReplacementRule

RESTART_MARKERS = ("—", "–", "--")
RESTART_KEYWORDS = ("actually", "let me", "sorry", "i mean", "wait", "no ")
FALSE_START_MAX_WORDS = 8

SINGLE_FILLERS = frozenset({"um", "uh", "hmm"})
PAUSE_CHARS = (",", ";", ":", ".", "!", "?", "—", "–")
SENTENCE_END = (".", "!", "?")
WORD_TRAILING = ",.!?"
MAX_PHRASE_LEN = 3

# "were" -> "we're" is left out on purpose: "were" is a real word.
CONTRACTIONS = (
    ("dont", "don't"),
    ("cant", "can't"),
    ("wont", "won't"),
    ("didnt", "didn't"),
    ("doesnt", "doesn't"),
    ("isnt", "isn't"),
    ("wasnt", "wasn't"),
    ("werent", "weren't"),
    ("wouldnt", "wouldn't"),
    ("couldnt", "couldn't"),
    ("shouldnt", "shouldn't"),
    ("hasnt", "hasn't"),
    ("havent", "haven't"),
    ("hadnt", "hadn't"),
    ("youre", "you're"),
    ("theyre", "they're"),
    ("thats", "that's"),
    ("whats", "what's"),
    ("heres", "here's"),
    ("theres", "there's"),
    ("lets", "let's"),
)

_SPACING_FIXES = ((" ,", ","), (" .", "."), (" !", "!"), (" ?", "?"), (" ;", ";"), (" :", ":"))


def format_text(text: str) -> str:
    cleaned = smart_cleanup(text).strip()
    if not cleaned:
        return ""

    result = capitalize_i_forms(cleaned)
    result = fix_contractions(result)
    result = capitalize_sentences(result)
    if not result.endswith(SENTENCE_END):
        result += "."
    return result


def apply_replacements(text: str, rules: Iterable[ReplacementRule]) -> str:
    """Whole-word, case-insensitive dictionary substitution; first rule wins."""
    rules = list(rules)
    if not rules:
        return text

    out = []
    for word in text.split():
        stripped, trailing = _split_trailing(word)
        lowered = stripped.lower()
        for rule in rules:
            if lowered == rule.source.lower():
                out.append(rule.target + trailing)
                break
        else:
            out.append(word)
    return " ".join(out)


def smart_cleanup(text: str) -> str:
    collapsed = collapse_whitespace(text)
    collapsed = cleanup_false_start(collapsed)

    tokens = collapsed.split()
    tokens = remove_fillers(tokens)
    tokens = collapse_repeated_phrases(tokens)
    tokens = remove_stutter_before_contraction(tokens)
    return normalize_spacing(" ".join(tokens))


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def cleanup_false_start(text: str) -> str:
    for marker in RESTART_MARKERS:
        index = text.rfind(marker)
        if index < 0:
            continue
        before = text[:index].strip()
        after = text[index + len(marker):].lstrip("-—–").strip()
        if not before or not after:
            continue

        restart = after.lower().startswith(RESTART_KEYWORDS)
        if restart or len(before.split()) <= FALSE_START_MAX_WORDS:
            return after
    return text


def remove_fillers(tokens: list[str]) -> list[str]:
    out: list[str] = []
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if is_punctuation_only(token):
            i += 1
            continue

        current = token_core(token)
        following = token_core(tokens[i + 1]) if i + 1 < len(tokens) else None
        prev_has_pause = bool(out) and has_pause(out[-1])

        if current == "uh" and following == "huh":
            i += 2
            continue
        if current in SINGLE_FILLERS:
            i += 1
            continue
        if (current, following) in (("you", "know"), ("i", "mean")):
            if prev_has_pause or has_pause(tokens[i + 1]):
                i += 2
                continue
        if current == "like" and (prev_has_pause or has_pause(token)):
            i += 1
            continue

        out.append(token)
        i += 1
    return out


def collapse_repeated_phrases(tokens: list[str]) -> list[str]:
    if len(tokens) < 2:
        return tokens

    cores = [token_core(t) for t in tokens]
    out: list[str] = []
    i = 0
    while i < len(tokens):
        max_len = min(MAX_PHRASE_LEN, (len(tokens) - i) // 2)
        matched = 0
        for length in range(max_len, 0, -1):
            if _repeated_at(cores, i, length):
                matched = length
                break

        if not matched:
            out.append(tokens[i])
            i += 1
            continue

        phrase = cores[i:i + matched]
        out.extend(tokens[i:i + matched])
        i += matched
        while i + matched <= len(tokens) and cores[i:i + matched] == phrase:
            i += matched
    return out


def _repeated_at(cores: list[str], start: int, length: int) -> bool:
    if length == 0 or start + length * 2 > len(cores):
        return False
    left = cores[start:start + length]
    right = cores[start + length:start + length * 2]
    if "" in left or "" in right:
        return False
    return left == right


def remove_stutter_before_contraction(tokens: list[str]) -> list[str]:
    out = []
    for index, token in enumerate(tokens):
        core = token_core(token)
        if len(core) == 1 and index + 1 < len(tokens):
            if token_core(tokens[index + 1]).startswith(core + "'"):
                continue
        out.append(token)
    return out


def capitalize_i_forms(text: str) -> str:
    out = []
    for word in text.split():
        lower = word.lower()
        stripped = lower.rstrip(WORD_TRAILING)
        if stripped == "i":
            fixed = lower.replace("i", "I", 1)
        elif stripped.startswith("i'"):
            fixed = "I" + lower[1:]
        else:
            fixed = word
        out.append(fixed)
    return " ".join(out)


def fix_contractions(text: str) -> str:
    for source, target in CONTRACTIONS:
        text = replace_whole_word_ci(text, source, target)
    return text


def replace_whole_word_ci(text: str, source: str, target: str) -> str:
    out = []
    for word in text.split():
        stripped, trailing = _split_trailing(word)
        if stripped.lower() == source:
            out.append(target + trailing)
        else:
            out.append(word)
    return " ".join(out)


def capitalize_sentences(text: str) -> str:
    chars = []
    capitalize_next = True
    for ch in text:
        if capitalize_next and ch.isalpha():
            chars.append(ch.upper())
            capitalize_next = False
        else:
            chars.append(ch)
            if ch in SENTENCE_END:
                capitalize_next = True
    return "".join(chars)


def normalize_spacing(text: str) -> str:
    for source, target in _SPACING_FIXES:
        text = text.replace(source, target)
    return collapse_whitespace(text).strip(",").strip()


def token_core(token: str) -> str:
    start, end = 0, len(token)
    while start < end and not _is_core_char(token[start]):
        start += 1
    while end > start and not _is_core_char(token[end - 1]):
        end -= 1
    return token[start:end].lower()


def _is_core_char(ch: str) -> bool:
    return ch.isalnum() or ch == "'"


def has_pause(token: str) -> bool:
    return token.endswith(PAUSE_CHARS)


def is_punctuation_only(token: str) -> bool:
    return not any(ch.isalnum() for ch in token)


def _split_trailing(word: str) -> tuple[str, str]:
    stripped = word.rstrip(WORD_TRAILING)
    return stripped, word[len(stripped):]

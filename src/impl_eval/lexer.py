"""Tokenization for IMPL S-expressions.

The lexer is the only stage that sees the raw text, so every token it emits is wrapped in a
:class:`~impl_eval.span.Span` pointing back at the characters it was built from.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Final

from .errors import LexError, Subject
from .span import Span

LPAREN: Final = "LPAREN"
RPAREN: Final = "RPAREN"
LBRACE: Final = "LBRACE"
RBRACE: Final = "RBRACE"
PLUS: Final = "PLUS"
MINUS: Final = "MINUS"
STAR: Final = "STAR"
SLASH: Final = "SLASH"
DOLLAR: Final = "DOLLAR"
HASH: Final = "HASH"
RATIONAL: Final = "RATIONAL"
STR_LIT: Final = "STR_LIT"
SYMBOL: Final = "SYMBOL"


@dataclass(frozen=True)
class Token:
    kind: str
    text: str

    def __str__(self) -> str:
        if self.kind == STR_LIT:
            return f'"{self.text}"'
        return self.text


@dataclass(frozen=True)
class TokenizerRule:
    """One multi-character lexical category.

    ``accepts(current, next_char)`` decides whether ``next_char`` extends the raw text matched so
    far (``current`` is empty when choosing a rule); ``finalize(raw)`` turns the full match into a
    token, or ``None`` for text that is skipped.
    """

    name: str
    accepts: Callable[[str, str], bool]
    finalize: Callable[[str], "Token | None"]


_SINGLE_TOKENS: Final[dict[str, str]] = {
    "(": LPAREN,
    ")": RPAREN,
    "{": LBRACE,
    "}": RBRACE,
    "+": PLUS,
    "-": MINUS,
    "*": STAR,
    "/": SLASH,
    "$": DOLLAR,
    "#": HASH,
}
_SIGNS: Final = frozenset("+-")
_WHITESPACE: Final = frozenset(" \t\n\r\f\v")


def _is_ascii_alpha(ch: str) -> bool:
    return ch.isascii() and ch.isalpha()


def _is_ascii_digit(ch: str) -> bool:
    return ch in "0123456789"


def _symbol_accepts(current: str, next_char: str) -> bool:
    if _is_ascii_alpha(next_char):
        return True
    return bool(current) and (_is_ascii_digit(next_char) or next_char == "-")


def _rational_accepts(current: str, next_char: str) -> bool:
    if not current and next_char in _SIGNS:
        return True
    return _is_ascii_digit(next_char) or next_char == "."


def _rational_finalize(raw: str) -> Token:
    # A lone sign is the arithmetic operator, not a number.
    if raw in _SIGNS:
        return Token(_SINGLE_TOKENS[raw], raw)
    return Token(RATIONAL, raw)


def _str_lit_accepts(current: str, next_char: str) -> bool:
    if not current:
        return next_char == '"'
    if len(current) == 1:
        # Always take the second character so that "" is a complete literal.
        return True
    return not current.endswith('"')


def _str_lit_finalize(raw: str) -> Token:
    if len(raw) < 2 or not raw.endswith('"'):
        raise ValueError("unterminated string literal")
    return Token(STR_LIT, raw[1:-1])


def _comment_accepts(current: str, next_char: str) -> bool:
    if not current:
        return next_char == ";"
    return next_char != "\n"


SYMBOL_RULE: Final = TokenizerRule("symbol", _symbol_accepts, lambda raw: Token(SYMBOL, raw))
RATIONAL_RULE: Final = TokenizerRule("rational", _rational_accepts, _rational_finalize)
STR_LIT_RULE: Final = TokenizerRule("string literal", _str_lit_accepts, _str_lit_finalize)
WHITESPACE_RULE: Final = TokenizerRule("whitespace", lambda _, ch: ch in _WHITESPACE, lambda _: None)
COMMENT_RULE: Final = TokenizerRule("comment", _comment_accepts, lambda _: None)

# Tried in this order; the first rule accepting the first character wins.
TOKENIZER_RULES: Final[tuple[TokenizerRule, ...]] = (
    SYMBOL_RULE,
    RATIONAL_RULE,
    STR_LIT_RULE,
    WHITESPACE_RULE,
    COMMENT_RULE,
)


def _find_rule(first: str) -> TokenizerRule | None:
    return next((rule for rule in TOKENIZER_RULES if rule.accepts("", first)), None)


def tokenize(source: str) -> list[Span[Token]]:
    """Translate IMPL text into span-tagged tokens, dropping whitespace and comments."""
    tokens: list[Span[Token]] = []
    i = 0

    while i < len(source):
        first = source[i]
        rule = _find_rule(first)

        if rule is None:
            kind = _SINGLE_TOKENS.get(first)
            if kind is None:
                raise LexError.invalid(Subject.CHAR, i, i + 1)
            tokens.append(Span(Token(kind, first), i, i + 1))
            i += 1
            continue

        end = i + 1
        while end < len(source) and rule.accepts(source[i:end], source[end]):
            end += 1

        try:
            token = rule.finalize(source[i:end])
        except ValueError as exc:
            raise LexError.invalid(Subject.STR_LIT, i, end) from exc
        if token is not None:
            tokens.append(Span(token, i, end))
        i = end

    return tokens


def render_tokens(tokens: list[Span[Token]]) -> str:
    """Re-serialize a token sequence; tokenizing the result yields the same tokens."""
    return " ".join(str(tok.value) for tok in tokens)

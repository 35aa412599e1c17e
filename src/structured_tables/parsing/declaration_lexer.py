"""Lexer for the record declaration DSL."""

import re

import ply.lex as lex

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}
_ESCAPE_RE = re.compile(r"\\(.)")


def _unescape(text: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), text)


class DeclarationLexer:
    """Lexer for tokenizing record declarations.

    Besides the usual ply interface it remembers where every token ends, so
    the parser can attach exact source spans to declarations.
    """

    # Reserved keywords
    reserved = {
        "struct": "STRUCT",
        "enum": "ENUM",
        "class": "CLASS",
        "case": "CASE",
        "let": "LET",
        "var": "VAR",
        "static": "STATIC",
        "true": "TRUE",
        "false": "FALSE",
        "nil": "NIL",
    }

    # Token list
    tokens = [
        "AT",
        "IDENTIFIER",
        "STRING",
        "INTEGER",
        "FLOAT",
        "LBRACE",
        "RBRACE",
        "LBRACKET",
        "RBRACKET",
        "LPAREN",
        "RPAREN",
        "COLON",
        "COMMA",
        "EQUALS",
        "ELLIPSIS",
        "DOT",
        "QUESTION",
        "SEMICOLON",
        "OPERATOR",
    ] + list(reserved.values())

    # Simple tokens
    t_AT = r"@"
    t_LBRACE = r"\{"
    t_RBRACE = r"\}"
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_COLON = r":"
    t_COMMA = r","
    t_ELLIPSIS = r"\.\.\."
    t_DOT = r"\."
    t_QUESTION = r"\?"
    t_SEMICOLON = r";"

    # Ignored characters (spaces, tabs, carriage returns)
    t_ignore = " \t\r"

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore
        self._ends: dict[int, int] = {}
        self.lineno = 1
        self.lexpos = 0

    def t_COMMENT(self, t: lex.LexToken) -> None:
        r"(\#|//)[^\n]*"
        # Must precede t_OPERATOR

    def t_FLOAT(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+\.\d+"
        t.value = float(t.value)
        return t

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"-?\d+"
        t.value = int(t.value)
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r'"([^"\\\n]|\\.)*"'
        t.value = _unescape(t.value[1:-1])
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_][a-zA-Z0-9_]*"
        # Check if it's a reserved word
        t.type = self.reserved.get(t.value, "IDENTIFIER")
        return t

    def t_EQUALS(self, t: lex.LexToken) -> lex.LexToken:
        r"=(?![=>])"
        return t

    def t_OPERATOR(self, t: lex.LexToken) -> lex.LexToken:
        r"[-+*/%<>!&|^~=]+"
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)
        # Don't return token — treat as whitespace

    def t_error(self, t: lex.LexToken) -> None:
        raise SyntaxError(f"Illegal character '{t.value[0]}' at position {t.lexpos}")

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Set the input string to tokenize."""
        self._ends = {}
        self.lexer.lineno = 1
        self.lexer.input(data)
        self.lineno = 1
        self.lexpos = 0

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        tok = self.lexer.token()
        if tok is not None:
            self._ends[tok.lexpos] = self.lexer.lexpos
        # Mirrored for the parser's position tracking
        self.lineno = self.lexer.lineno
        self.lexpos = self.lexer.lexpos
        return tok

    def token_end(self, start: int) -> int:
        """Return the end offset of the token starting at ``start``."""
        return self._ends.get(start, start)

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens

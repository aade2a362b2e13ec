import pandas as pd

from requirement import And, Leaf, Or, Requirement

# Canonical token strings produced upstream, e.g.
#   "LPAREN COURSE(CS 1110) OR COURSE(CS 1112) RPAREN AND COURSE(MATH 1920)"
KW_AND = "AND"
KW_OR = "OR"
KW_LPAREN = "LPAREN"
KW_RPAREN = "RPAREN"
KW_COURSE = "COURSE("

NONE_VALUES = {"", "none", "nan"}


class PrereqParseError(ValueError):
    """A stored token string does not follow the canonical grammar."""

    def __init__(self, message: str, token_string: str, position: int):
        super().__init__(f"{message} at position {position} in: {token_string}")
        self.token_string = token_string
        self.position = position


class _TokenReader:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def skip_whitespace(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def at_end(self) -> bool:
        self.skip_whitespace()
        return self.pos >= len(self.text)

    def match(self, keyword: str) -> bool:
        """Consume `keyword` if it is next. Word keywords must end on a boundary."""
        self.skip_whitespace()
        if not self.text.startswith(keyword, self.pos):
            return False
        end = self.pos + len(keyword)
        if keyword != KW_COURSE and end < len(self.text):
            nxt = self.text[end]
            if nxt.isalnum() or nxt == "_":
                return False
        self.pos = end
        return True

    def error(self, message: str) -> PrereqParseError:
        return PrereqParseError(message, self.text, self.pos)


def _fold_right(operands: list, node_type) -> Requirement:
    # [a, b, c] -> node_type(a, node_type(b, c))
    tree = operands[-1]
    for operand in reversed(operands[:-1]):
        tree = node_type(operand, tree)
    return tree


def _parse_expr(reader: _TokenReader) -> Requirement:
    """expr ::= orTerm (AND expr)?"""
    terms = [_parse_or_term(reader)]
    while reader.match(KW_AND):
        terms.append(_parse_or_term(reader))
    return _fold_right(terms, And)


def _parse_or_term(reader: _TokenReader) -> Requirement:
    """orTerm ::= unit (OR orTerm)?"""
    units = [_parse_unit(reader)]
    while reader.match(KW_OR):
        units.append(_parse_unit(reader))
    return _fold_right(units, Or)


def _parse_unit(reader: _TokenReader) -> Requirement:
    """unit ::= COURSE(<text>) | LPAREN expr RPAREN"""
    if reader.match(KW_LPAREN):
        inner = _parse_expr(reader)
        if not reader.match(KW_RPAREN):
            raise reader.error("Expected RPAREN")
        return inner

    if reader.match(KW_COURSE):
        start = reader.pos
        depth = 1
        text = reader.text
        # Leaf text may itself contain balanced parentheses.
        while reader.pos < len(text):
            ch = text[reader.pos]
            if ch == "(":
                depth += 1
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    break
            reader.pos += 1
        if depth != 0:
            raise PrereqParseError("Unterminated COURSE(", text, start)
        content = text[start:reader.pos].strip()
        reader.pos += 1
        if not content:
            raise PrereqParseError("Empty COURSE()", text, start)
        return Leaf(content)

    raise reader.error("Expected COURSE or LPAREN")


def parse_token_string(token_str) -> Requirement | None:
    """
    Parses a canonical token string into a Requirement tree.

    Grammar (OR binds tighter than AND, both right-associative):
      expr    ::= orTerm (AND expr)?
      orTerm  ::= unit (OR orTerm)?
      unit    ::= COURSE(<text>) | LPAREN expr RPAREN

      "COURSE(CS 1110) OR COURSE(CS 1112) AND COURSE(MATH 1920)"
        → And(Or(CS 1110, CS 1112), MATH 1920)

    Blank / none / NaN → None (no prerequisites).
    Anything malformed raises PrereqParseError.
    """
    if token_str is None or (isinstance(token_str, float) and pd.isna(token_str)):
        return None

    s = str(token_str).strip()
    if s.lower() in NONE_VALUES:
        return None

    reader = _TokenReader(s)
    tree = _parse_expr(reader)
    if not reader.at_end():
        raise reader.error("Unexpected trailing input")
    return tree


def to_token_string(node: Requirement) -> str:
    """Inverse of parse_token_string; compound operands are wrapped in LPAREN/RPAREN."""
    if isinstance(node, Leaf):
        return f"{KW_COURSE}{node.content})"
    if isinstance(node, (And, Or)):
        op = KW_AND if isinstance(node, And) else KW_OR
        return f"{_operand_tokens(node.left)} {op} {_operand_tokens(node.right)}"
    raise TypeError(f"Unknown requirement node: {node!r}")


def _operand_tokens(node: Requirement) -> str:
    text = to_token_string(node)
    if isinstance(node, (And, Or)):
        return f"{KW_LPAREN} {text} {KW_RPAREN}"
    return text

"""
Comment stripping for the security scanner.

Comments are replaced by spaces so findings keep their original line and
column. String and regex literals are respected: a `//` inside a quoted URL
or a `/*` inside `/\/*$/` is code.
"""

import os

C_STYLE_EXTENSIONS = {
    ".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".java", ".kt",
    ".go", ".c", ".cc", ".cpp", ".h", ".cs", ".swift", ".scss", ".less",
}
HASH_STYLE_EXTENSIONS = {".py", ".sh", ".bash", ".yaml", ".yml", ".toml", ".ini", ".rb", ".cfg", ".conf"}

# A `/` after one of these (or at the start of a line) opens a regex literal
REGEX_PRECEDERS = set("(,=:[!&|?{};+-*%<>~^")
REGEX_KEYWORDS = {"return", "typeof", "case", "do", "else", "in", "of", "void", "throw", "yield", "await", "delete", "new"}

# Lexer states
_CODE, _STRING, _LINE_COMMENT, _BLOCK_COMMENT, _REGEX = range(5)


def comment_style(path: str) -> str:
    """Return "c", "hash" or "none" for a file path."""
    name = os.path.basename(path)
    if name.startswith(".env"):
        return "hash"
    ext = os.path.splitext(name)[1].lower()
    if ext in C_STYLE_EXTENSIONS:
        return "c"
    if ext in HASH_STYLE_EXTENSIONS:
        return "hash"
    return "none"


def _regex_allowed(text: str, pos: int) -> bool:
    """Whether a `/` at `pos` starts a regex literal rather than a division."""
    j = pos - 1
    while j >= 0 and text[j] in " \t":
        j -= 1
    if j < 0 or text[j] in "\r\n":
        return True
    prev = text[j]
    if prev in REGEX_PRECEDERS:
        return True
    if prev.isalnum() or prev in "_$":
        start = j
        while start > 0 and (text[start - 1].isalnum() or text[start - 1] in "_$"):
            start -= 1
        return text[start:j + 1] in REGEX_KEYWORDS
    return False


def strip_comments(text: str, style: str) -> str:
    """
    Blank out comments in `text`.

    Args:
        text: Source text
        style: "c" for // and /* */ comments, "hash" for # comments,
               anything else returns the text unchanged

    Returns:
        Text of the same length with comment characters replaced by spaces
        (newlines are kept)
    """
    if style == "c":
        quotes = "'\"`"
    elif style == "hash":
        quotes = "'\""
    else:
        return text

    out = []
    state = _CODE
    quote = ""
    in_class = False
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < n else ""

        if state == _CODE:
            if ch in quotes:
                state, quote = _STRING, ch
                out.append(ch)
            elif style == "c" and ch == "/" and nxt == "/":
                state = _LINE_COMMENT
                out.append("  ")
                i += 2
                continue
            elif style == "c" and ch == "/" and nxt == "*":
                state = _BLOCK_COMMENT
                out.append("  ")
                i += 2
                continue
            elif style == "c" and ch == "/" and _regex_allowed(text, i):
                state, in_class = _REGEX, False
                out.append(ch)
            elif style == "hash" and ch == "#":
                state = _LINE_COMMENT
                out.append(" ")
            else:
                out.append(ch)

        elif state == _STRING:
            out.append(ch)
            if ch == "\\" and nxt:
                out.append(nxt)
                i += 2
                continue
            if ch == quote:
                state = _CODE
            elif ch == "\n" and quote != "`":
                # unterminated literal ends at the line break
                state = _CODE

        elif state == _REGEX:
            out.append(ch)
            if ch == "\\" and nxt and nxt != "\n":
                out.append(nxt)
                i += 2
                continue
            if ch == "[":
                in_class = True
            elif ch == "]":
                in_class = False
            elif ch == "/" and not in_class:
                state = _CODE
            elif ch == "\n":
                # not a regex after all
                state = _CODE

        elif state == _LINE_COMMENT:
            if ch == "\n":
                state = _CODE
                out.append("\n")
            else:
                out.append(" ")

        else:  # _BLOCK_COMMENT
            if ch == "*" and nxt == "/":
                state = _CODE
                out.append("  ")
                i += 2
                continue
            out.append("\n" if ch == "\n" else " ")

        i += 1

    return "".join(out)

"""Truncation heuristics for generated server source.

Generated code is sometimes cut off mid-output. ``is_complete`` combines four
independent signals; ``attempt_repair`` closes what can be closed mechanically.
Both are approximate and the harness run after them is the real check.
"""

import re

ENTRY_NAMES = ("main", "run", "start", "bootstrap", "serve")

_ENTRY_INVOCATION_RE = re.compile(
    r"(?:^|\n)[ \t]*(?:await\s+)?(?:asyncio\.run\(\s*)?(?:\w+\.)?(?:%s)\s*\([^\n()]*\)\s*\)?"
    r"(?:\.catch\([^\n]*\))?;?\s*$" % "|".join(ENTRY_NAMES)
)
_FINAL_EXPORT_RE = re.compile(r"(?:^|\n)[ \t]*(?:export\s+[^\n]*|module\.exports\s*=[^\n]*)\s*$")
_CLOSING_BRACE_RE = re.compile(r"\}\s*\)?\s*;?\s*$")

_TRAILING_OPERATOR_RE = re.compile(r"(?:=>|->|[+\-*/%=&|^<>!?,(\[{:.])\s*$")
CONTINUATION_KEYWORDS = frozenset(
    {
        "return", "const", "let", "var", "await", "new", "import", "from",
        "export", "async", "function", "class", "if", "else", "for", "while",
        "switch", "case", "throw", "typeof", "extends", "implements", "def",
        "lambda", "yield", "and", "or", "not", "in", "is", "with", "elif",
    }
)
_LAST_WORD_RE = re.compile(r"([A-Za-z_]+)\s*$")

_TS_ENTRY_DEF_RE = re.compile(r"\b(?:async\s+)?function\s+main\s*\(|\bconst\s+main\s*=")
_PY_ENTRY_DEF_RE = re.compile(r"^(async\s+)?def\s+main\s*\(", re.MULTILINE)
_MAIN_CALL_RE = re.compile(r"(?<![\w.])main\s*\(\s*\)")


def _strip_literals(code: str) -> str:
    """Remove string literals and comments so brackets inside them are not counted."""
    out: list[str] = []
    i, n = 0, len(code)
    while i < n:
        ch = code[i]
        if code.startswith('"""', i) or code.startswith("'''", i):
            end = code.find(code[i : i + 3], i + 3)
            i = n if end == -1 else end + 3
            out.append('""')
            continue
        if ch in "\"'`":
            quote = ch
            i += 1
            while i < n and code[i] != quote:
                if code[i] == "\\":
                    i += 1
                elif code[i] == "\n" and quote != "`":
                    break
                i += 1
            i += 1
            out.append('""')
            continue
        if code.startswith("//", i) or ch == "#":
            end = code.find("\n", i)
            i = n if end == -1 else end
            continue
        if code.startswith("/*", i):
            end = code.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def missing_closers(code: str) -> tuple[int, int]:
    """(missing closing braces, missing closing parentheses); never negative."""
    bare = _strip_literals(code)
    braces = bare.count("{") - bare.count("}")
    parens = bare.count("(") - bare.count(")")
    return max(0, braces), max(0, parens)


def _has_closing_pattern(code: str) -> bool:
    tail = code.rstrip()
    return bool(
        _ENTRY_INVOCATION_RE.search(tail)
        or _FINAL_EXPORT_RE.search(tail)
        or _CLOSING_BRACE_RE.search(tail)
    )


def _ends_mid_statement(code: str) -> bool:
    tail = _strip_literals(code).rstrip()
    if not tail:
        return False
    if _TRAILING_OPERATOR_RE.search(tail):
        return True
    word = _LAST_WORD_RE.search(tail)
    return bool(word and word.group(1) in CONTINUATION_KEYWORDS)


def truncation_signals(code: str) -> list[str]:
    """Names of the truncation signals that fire for ``code``."""
    if not code.strip():
        return ["empty"]
    signals = []
    if not _has_closing_pattern(code):
        signals.append("no_closing_pattern")
    bare = _strip_literals(code)
    if bare.count("{") != bare.count("}"):
        signals.append("unbalanced_braces")
    if bare.count("(") != bare.count(")"):
        signals.append("unbalanced_parentheses")
    if _ends_mid_statement(code):
        signals.append("ends_mid_statement")
    return signals


def is_complete(code: str) -> bool:
    """True when no truncation signal fires."""
    return not truncation_signals(code)


def _entry_invocation(code: str) -> str | None:
    """Invocation to append when an entry point is defined but never called."""
    py_def = _PY_ENTRY_DEF_RE.search(code)
    if py_def:
        definitions = len(re.findall(r"\bdef\s+main\s*\(\s*\)", code))
        if len(_MAIN_CALL_RE.findall(code)) > definitions:
            return None
        if py_def.group(1):
            return '\n\nif __name__ == "__main__":\n    asyncio.run(main())\n'
        return '\n\nif __name__ == "__main__":\n    main()\n'
    if _TS_ENTRY_DEF_RE.search(code):
        definitions = len(re.findall(r"\bfunction\s+main\s*\(\s*\)", code))
        if len(_MAIN_CALL_RE.findall(code)) > definitions:
            return None
        return "\n\nmain().catch(console.error);\n"
    return None


def attempt_repair(code: str) -> str:
    """Close missing braces and parentheses, then invoke an uncalled entry point.

    Missing ``)`` are inserted just before the appended ``}``.
    """
    braces, parens = missing_closers(code)
    repaired = code.rstrip()
    if parens or braces:
        repaired += ")" * parens
        if braces:
            repaired += "\n" + "}" * braces
        repaired += "\n"
    invocation = _entry_invocation(repaired)
    if invocation:
        repaired = repaired.rstrip() + invocation
    return repaired

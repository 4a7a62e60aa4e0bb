"""Statement splitter for dump text.

Splitting on every `;` breaks as soon as a stored string contains one, so the
splitter tracks quoting state: single-quoted strings (doubled quotes, plus
backslash escapes for MySQL-style dumps), double-quoted and backtick-quoted
names, `--` / `#` line comments and `/* */` block comments. Only a `;` seen
outside all of those ends a statement.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, List, Optional


_TABLE_PATTERN = re.compile(
    r"""^\s*(?:
        INSERT\s+(?:IGNORE\s+)?INTO
      | REPLACE\s+INTO
      | CREATE\s+(?:TEMPORARY\s+)?TABLE(?:\s+IF\s+NOT\s+EXISTS)?
      | DROP\s+TABLE(?:\s+IF\s+EXISTS)?
      | ALTER\s+TABLE
      | TRUNCATE(?:\s+TABLE)?
      | UPDATE
      | DELETE\s+FROM
      | LOCK\s+TABLES
      | CREATE\s+(?:UNIQUE\s+)?INDEX\s+(?:IF\s+NOT\s+EXISTS\s+)?\S+\s+ON
    )\s+[`"\[]?([^\s`"\]\(,;]+)""",
    re.IGNORECASE | re.VERBOSE,
)

_TRANSACTION_CONTROL = re.compile(
    r"^\s*(?:START\s+TRANSACTION"
    r"|BEGIN(?:\s+(?:TRANSACTION|WORK|DEFERRED|IMMEDIATE|EXCLUSIVE))?"
    r"|COMMIT(?:\s+WORK)?"
    r"|ROLLBACK(?:\s+WORK)?"
    r"|END(?:\s+TRANSACTION)?)\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class Statement:
    """One executable statement and where it started in the dump."""

    sql: str
    line: int

    @property
    def table(self) -> Optional[str]:
        return statement_table(self.sql)

    @property
    def is_transaction_control(self) -> bool:
        return bool(_TRANSACTION_CONTROL.match(self.sql))


def statement_table(sql: str) -> Optional[str]:
    """Best-effort name of the table a statement touches."""
    match = _TABLE_PATTERN.match(sql)
    if not match:
        return None
    return match.group(1).split(".")[-1]


def iter_statements(source: str, *, backslash_escapes: bool = False) -> Iterator[Statement]:
    buf: List[str] = []
    has_code = False
    start_line = 1
    line = 1
    i = 0
    n = len(source)

    def emit() -> Optional[Statement]:
        sql = "".join(buf).strip()
        if has_code and sql:
            return Statement(sql=sql, line=start_line)
        return None

    while i < n:
        ch = source[i]
        nxt = source[i + 1] if i + 1 < n else ""

        if ch in ("'", '"', "`"):
            if not has_code:
                has_code = True
                start_line = line
            quote = ch
            buf.append(ch)
            i += 1
            while i < n:
                c = source[i]
                if c == "\n":
                    line += 1
                if backslash_escapes and quote != "`" and c == "\\" and i + 1 < n:
                    if source[i + 1] == "\n":
                        line += 1
                    buf.append(source[i:i + 2])
                    i += 2
                    continue
                if c == quote:
                    if i + 1 < n and source[i + 1] == quote:
                        buf.append(quote * 2)
                        i += 2
                        continue
                    buf.append(c)
                    i += 1
                    break
                buf.append(c)
                i += 1
            continue

        if (ch == "-" and nxt == "-") or (ch == "#" and backslash_escapes):
            end = source.find("\n", i)
            if end == -1:
                break
            # Keep the newline so tokens on either side stay separated
            buf.append("\n")
            line += 1
            i = end + 1
            continue

        if ch == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            stop = n if end == -1 else end + 2
            comment = source[i:stop]
            # MySQL executes /*! ... */ bodies, so those count as code
            if comment.startswith("/*!") and not has_code:
                has_code = True
                start_line = line
            buf.append(comment)
            line += comment.count("\n")
            i = stop
            continue

        if ch == ";":
            stmt = emit()
            if stmt is not None:
                yield stmt
            buf = []
            has_code = False
            i += 1
            continue

        if ch == "\n":
            line += 1
        elif not ch.isspace() and not has_code:
            has_code = True
            start_line = line
        buf.append(ch)
        i += 1

    stmt = emit()
    if stmt is not None:
        yield stmt


def split_statements(source: str, *, backslash_escapes: bool = False) -> List[Statement]:
    """Split dump text into statements, ignoring terminators inside quotes and comments."""
    return list(iter_statements(source, backslash_escapes=backslash_escapes))

"""Parser for struct-tag style option strings such as ``name,opt,key:value``."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Tag:
    """A parsed tag: a leading name and repeated key/value options."""

    name: str = ""
    options: dict[str, list[str]] = field(default_factory=dict)

    def is_zero(self) -> bool:
        return self.name == "" and not self.options

    def has_option(self, name: str) -> bool:
        return name in self.options

    def option(self, name: str) -> str | None:
        """Return the last value given for ``name``, or None if it is absent."""
        values = self.options.get(name)
        if values is None:
            return None
        return values[-1]


def parse(s: str) -> Tag:
    """Parse a tag string."""
    if not s:
        return Tag()
    parser = _TagParser(s)
    parser.parse()
    return parser.tag


class _TagParser:
    def __init__(self, s: str) -> None:
        self.s = s
        self.i = 0
        self.tag = Tag()
        self.seen_name = False

    def valid(self) -> bool:
        return self.i < len(self.s)

    def read(self) -> str:
        if not self.valid():
            return ""
        c = self.s[self.i]
        self.i += 1
        return c

    def peek(self) -> str:
        return self.s[self.i] if self.valid() else ""

    def set_name(self, name: str) -> None:
        if self.seen_name:
            self.add_option(name, "")
        else:
            self.seen_name = True
            self.tag.name = name

    def add_option(self, key: str, value: str) -> None:
        self.seen_name = True
        if not key:
            return
        self.tag.options.setdefault(key, []).append(value)

    def parse(self) -> None:
        while self.valid():
            self.parse_key_value()
            if self.peek() == ",":
                self.i += 1

    def parse_key_value(self) -> None:
        start = self.i
        while self.valid():
            c = self.read()
            if c == ",":
                self.set_name(self.s[start : self.i - 1])
                return
            if c == ":":
                key = self.s[start : self.i - 1]
                self.add_option(key, self.parse_value())
                return
            if c == '"':
                self.set_name(self.parse_quoted_value())
                return
        self.set_name(self.s[start : self.i])

    def parse_value(self) -> str:
        start = self.i
        while self.valid():
            c = self.read()
            if c == '"':
                return self.parse_quoted_value()
            if c == ",":
                return self.s[start : self.i - 1]
            if c == "(":
                self.skip_pairs("(", ")")
        return self.s[start : self.i]

    def parse_quoted_value(self) -> str:
        idx = self.s.find('"', self.i)
        if idx >= 0 and self.s[idx - 1] != "\\":
            value = self.s[self.i : idx]
            self.i = idx + 1
            return value

        out: list[str] = []
        while self.valid():
            c = self.read()
            if c == "\\":
                out.append(self.read())
            elif c == '"':
                return "".join(out)
            else:
                out.append(c)
        return ""

    def skip_pairs(self, start: str, end: str) -> None:
        level = 0
        while self.valid():
            c = self.read()
            if c == '"':
                self.parse_quoted_value()
            elif c == start:
                level += 1
            elif c == end:
                if level == 0:
                    return
                level -= 1
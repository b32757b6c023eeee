"""Incremental scanner for concatenated JSON objects.

Some providers stream a JSON array whose elements arrive across arbitrary
network reads, e.g. Gemini's streamGenerateContent:

    [{"candidates": [...]}
    ,{"candidates": [...]}
    ]

The scanner tracks brace depth and string state across feed() calls, so an
object split anywhere (inside a string, inside an escape, between braces)
is returned once it closes. Braces inside quoted strings do not count.

Anything between top-level objects (array brackets, commas, whitespace) is
ignored.
"""


class JsonObjectScanner:
    """Splits a character stream into complete top-level JSON object texts.

    Instances hold per-stream state and must not be shared between streams.
    """

    def __init__(self) -> None:
        self._partial: list[str] = []
        self._depth = 0
        self._in_string = False
        self._escaped = False

    def feed(self, text: str) -> list[str]:
        """Consume more characters; return every object completed by them."""
        objects: list[str] = []
        start: int | None = 0 if self._depth else None

        for index, char in enumerate(text):
            if self._depth == 0:
                if char == "{":
                    self._depth = 1
                    start = index
                continue

            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif char == "\\":
                    self._escaped = True
                elif char == '"':
                    self._in_string = False
                continue

            if char == '"':
                self._in_string = True
            elif char == "{":
                self._depth += 1
            elif char == "}":
                self._depth -= 1
                if self._depth == 0:
                    self._partial.append(text[start : index + 1])
                    objects.append("".join(self._partial))
                    self._partial = []
                    start = None

        if self._depth and start is not None:
            self._partial.append(text[start:])

        return objects

    def pending(self) -> str:
        """Text of the object currently open, or "" between objects."""
        return "".join(self._partial)

"""
Result records: one JSON-shaped line per query outcome.
"""

import json
import sys
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, TextIO

from rich.console import Console
from rich.syntax import Syntax

from promql_poller.models.core import FetchOutcome
from promql_poller.utils.errors import FormatError

TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f %z"

RECORD_FORMAT = '{{"time": {time}, "name": {name}, "result": {result}}}'

HIGHLIGHT_THEME = "native"


def format_timestamp(timestamp: datetime) -> str:
    if timestamp.tzinfo is None:
        timestamp = timestamp.astimezone()
    return timestamp.strftime(TIME_FORMAT)


def format_record(name: str, timestamp: datetime, outcome: FetchOutcome) -> str:
    """
    Render one outcome as a single-line record (without the newline).

    Successful payloads are embedded verbatim, so a payload that is not
    valid JSON produces a malformed record. Error messages are embedded as
    JSON strings.
    """
    if outcome.succeeded:
        result = outcome.result_text()
    else:
        result = json.dumps(outcome.result_text(), ensure_ascii=False)

    return RECORD_FORMAT.format(
        time=json.dumps(format_timestamp(timestamp)),
        name=json.dumps(name, ensure_ascii=False),
        result=result,
    )


def pretty_json(text: str) -> str:
    """
    Re-indent JSON text with two spaces.

    Raises:
        FormatError: If the text is not valid JSON
    """
    try:
        value = json.loads(text)
    except json.JSONDecodeError as e:
        raise FormatError(f"Cannot pretty print result: {e}") from e
    return json.dumps(value, indent=2, ensure_ascii=False)


class ResultLogger:
    """
    Writes result records to a text sink, one line per outcome.

    Each record is written with a single ``write`` call under a lock so
    records from concurrently running queries never interleave.
    """

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()
        self.records_written = 0

    def log(self, name: str, timestamp: datetime, outcome: FetchOutcome) -> None:
        """Format an outcome and write it to the sink."""
        self._write(self.render(name, timestamp, outcome))

    def render(self, name: str, timestamp: datetime, outcome: FetchOutcome) -> str:
        return format_record(name, timestamp, outcome) + "\n"

    def _write(self, text: str) -> None:
        with self._lock:
            self.stream.write(text)
            self.stream.flush()
            self.records_written += 1


@dataclass
class FormatOptions:
    """Output formatting for the run and query commands."""
    no_pretty_json: bool = False
    no_colour: bool = False
    plain: bool = False

    def resolve(self, stream: TextIO) -> 'FormatOptions':
        """Apply ``plain`` and disable formatting when the sink is not a terminal."""
        no_pretty_json = self.no_pretty_json
        no_colour = self.no_colour

        if self.plain:
            no_colour = True
            no_pretty_json = True

        if not no_colour and not _is_terminal(stream):
            no_colour = True
            no_pretty_json = True

        return FormatOptions(no_pretty_json=no_pretty_json, no_colour=no_colour, plain=self.plain)


def _is_terminal(stream: TextIO) -> bool:
    isatty = getattr(stream, "isatty", None)
    try:
        return bool(isatty and isatty())
    except ValueError:  # closed stream
        return False


class PrettyResultLogger(ResultLogger):
    """
    Result logger for interactive use.

    Optionally pretty prints the whole record and highlights it as JSON.
    Formatting failures raise ``FormatError`` instead of writing partial
    output.
    """

    def __init__(self, stream: Optional[TextIO] = None, options: Optional[FormatOptions] = None):
        super().__init__(stream)
        self.options = (options or FormatOptions()).resolve(self.stream)
        self._console: Optional[Console] = None
        if not self.options.no_colour:
            self._console = Console(file=self.stream, force_terminal=True, highlight=False)

    def log(self, name: str, timestamp: datetime, outcome: FetchOutcome) -> None:
        if not outcome.succeeded:
            raise outcome.error

        text = format_record(name, timestamp, outcome)
        if not self.options.no_pretty_json:
            text = pretty_json(text)

        if self._console is None:
            self._write(text + "\n")
            return

        with self._lock:
            self._console.print(
                Syntax(text, "json", theme=HIGHLIGHT_THEME, background_color="default", word_wrap=True)
            )
            self.stream.flush()
            self.records_written += 1

"""Host capability interface.

The pipeline never talks to an editor directly. It receives a ``Host`` that
knows how to hand out the active document, replace its content, ask the user
something and show messages. ``TerminalHost`` is the implementation used by
the CLI: documents are files on disk and prompts go through click.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import click

INFO    = "info"
WARNING = "warning"
ERROR   = "error"


@dataclass
class Document:
    """An open source buffer."""

    path: Path
    text: str
    is_dirty: bool = False

    @property
    def lines(self) -> list[str]:
        return self.text.split("\n")


@dataclass(frozen=True)
class PromptSpec:
    message: str
    placeholder: str | None = None
    secret: bool = False
    default: str | None = None


class Host(Protocol):
    def get_active_document(self) -> Document | None: ...

    def replace_content(self, document: Document, text: str) -> None: ...

    def prompt(self, spec: PromptSpec) -> str | None: ...

    def confirm(self, message: str, accept: str, cancel: str) -> bool: ...

    def show_message(self, level: str, message: str) -> None: ...

    def report_progress(self, message: str) -> None: ...

    def present(self, report: dict[str, Any]) -> None: ...


# ---------------------------------------------------------------------------
# Terminal implementation
# ---------------------------------------------------------------------------

class TerminalHost:
    """Host backed by the file system and the terminal."""

    def __init__(
        self,
        document_path: str | Path | None = None,
        assume_yes: bool = False,
        verbose: bool = False,
        output_path: str | None = None,
        pretty: bool = False,
    ) -> None:
        self._document_path = Path(document_path) if document_path else None
        self._assume_yes = assume_yes
        self._verbose = verbose
        self._output_path = output_path
        self._pretty = pretty

    def get_active_document(self) -> Document | None:
        if self._document_path is None or not self._document_path.is_file():
            return None
        text = self._document_path.read_text(encoding="utf-8")
        return Document(path=self._document_path, text=text)

    def replace_content(self, document: Document, text: str) -> None:
        # Single write of the whole buffer
        document.path.write_text(text, encoding="utf-8")
        document.text = text

    def prompt(self, spec: PromptSpec) -> str | None:
        message = spec.message
        if spec.placeholder:
            message = f"{message} ({spec.placeholder})"
        try:
            answer = click.prompt(
                message,
                default=spec.default or "",
                hide_input=spec.secret,
                show_default=bool(spec.default),
                err=True,
            )
        except click.Abort:
            return None
        answer = answer.strip()
        return answer or None

    def confirm(self, message: str, accept: str, cancel: str) -> bool:
        click.echo(f"Warning: {message}", err=True)
        if self._assume_yes:
            return True
        try:
            return click.confirm(f"{accept}? (no = {cancel})", default=False, err=True)
        except click.Abort:
            return False

    def show_message(self, level: str, message: str) -> None:
        prefix = {WARNING: "Warning: ", ERROR: "Error: "}.get(level, "")
        click.echo(f"{prefix}{message}", err=True)

    def report_progress(self, message: str) -> None:
        if self._verbose:
            click.echo(f"[progress] {message}", err=True)

    def present(self, report: dict[str, Any]) -> None:
        """Write the report as JSON to stdout or to the output file."""
        indent = 2 if self._pretty else None
        text = json.dumps(report, indent=indent, ensure_ascii=False)
        if self._output_path:
            with open(self._output_path, "w", encoding="utf-8") as f:
                f.write(text)
            click.echo(f"Report written to '{self._output_path}'", err=True)
        else:
            click.echo(text)

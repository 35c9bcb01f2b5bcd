"""Interactive shell and command-line entry point.

The shell is a thin front end over :class:`~impl_eval.interpreter.Interpreter`: it reads lines,
prints results as ``= value`` and renders diagnostics as a caret underline beneath the offending
part of the input.
"""

from __future__ import annotations

import logging
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

import typer
from rich.color import Color, ColorParseError
from rich.console import Console
from rich.style import Style
from rich.text import Text

from . import __version__
from .errors import ImplError
from .interpreter import Interpreter, Output, OutputKind

logger = logging.getLogger(__name__)

PROMPT = ">"


class ConfigError(Exception):
    """The shell configuration file could not be read or is malformed."""


def _section(data: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = data.get(name, {})
    if not isinstance(section, Mapping):
        raise ConfigError(f"[{name}] must be a table")
    return section


@dataclass(frozen=True)
class ShellConfig:
    output_color: str = "yellow"
    prompt_color: str = "green"
    prompt_padding: int = 1
    span_color: str = "cyan"

    def __post_init__(self) -> None:
        for field_name in ("output_color", "prompt_color", "span_color"):
            value = getattr(self, field_name)
            if not isinstance(value, str):
                raise ConfigError(f"{field_name} must be a string, got {value!r}")
            try:
                Color.parse(value)
            except ColorParseError as exc:
                raise ConfigError(f"{field_name}: unknown color {value!r}") from exc
        if not isinstance(self.prompt_padding, int) or self.prompt_padding < 0:
            raise ConfigError(f"prompt_padding must be a non-negative integer, got {self.prompt_padding!r}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ShellConfig":
        defaults = cls()
        output = _section(data, "output")
        prompt = _section(data, "prompt")
        spans = _section(data, "spans")
        return cls(
            output_color=output.get("color", defaults.output_color),
            prompt_color=prompt.get("color", defaults.prompt_color),
            prompt_padding=prompt.get("padding", defaults.prompt_padding),
            span_color=spans.get("color", defaults.span_color),
        )

    @classmethod
    def read(cls, path: Path) -> "ShellConfig":
        try:
            with path.open("rb") as fh:
                data = tomllib.load(fh)
        except OSError as exc:
            raise ConfigError(f"cannot read {path}: {exc.strerror or exc}") from exc
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"{path}: {exc}") from exc
        return cls.from_mapping(data)

    def to_toml(self) -> str:
        return "\n".join(
            (
                "[output]",
                f'color = "{self.output_color}"',
                "",
                "[prompt]",
                f'color = "{self.prompt_color}"',
                f"padding = {self.prompt_padding}",
                "",
                "[spans]",
                f'color = "{self.span_color}"',
            )
        )


_USAGE = (
    "Commands:",
    "  :h, :help               Prints this usage information.",
    "  :a, :aliases            Prints all defined aliases.",
    "  :c, :config             Prints the current configuration.",
    "  :q, :quit               Leaves the shell.",
)


def is_command(line: str) -> bool:
    return line.startswith(":")


class Shell:
    def __init__(
        self,
        interpreter: Interpreter | None = None,
        config: ShellConfig | None = None,
        *,
        console: Console | None = None,
        error_console: Console | None = None,
    ) -> None:
        self.interpreter = Interpreter() if interpreter is None else interpreter
        self.config = ShellConfig() if config is None else config
        self.console = Console(highlight=False) if console is None else console
        self.error_console = Console(stderr=True, highlight=False) if error_console is None else error_console

    @property
    def prompt_padding(self) -> str:
        return " " * self.config.prompt_padding

    def prompt(self) -> Text:
        return Text.assemble((PROMPT, Style(color=self.config.prompt_color, bold=True)), self.prompt_padding)

    def process(self, line: str, *, echoed: bool = True) -> bool:
        """Handle one line of input; returns ``False`` once the user asks to quit."""
        # Offsets must match what was typed after the prompt, so only the newline is dropped.
        line = line.rstrip("\r\n")
        if not line.strip():
            return True
        if is_command(line.strip()):
            return self.process_command(line.strip())
        self.run_source(line, echoed=echoed)
        return True

    def process_command(self, line: str) -> bool:
        name = line.lstrip(":").strip().partition(" ")[0]
        if name in {"h", "help"}:
            for row in _USAGE:
                self.console.print(row, markup=False)
            self.print_operations()
        elif name in {"a", "aliases"}:
            self.print_aliases()
        elif name in {"c", "config"}:
            self.console.print(self.config.to_toml(), markup=False)
        elif name in {"q", "quit"}:
            return False
        else:
            self._print_message("error", f"unknown command ':{name}'")
        return True

    def print_operations(self) -> None:
        self.console.print("Operations:", markup=False)
        for name, operation in sorted(self.interpreter.operations.items()):
            usage = " ".join([name, *(f"<{kind.value}>" for kind in operation.signature)])
            self.console.print(f"  ({usage})".ljust(36) + operation.summary, markup=False)

    def print_aliases(self) -> None:
        for symbol, value in self.interpreter.aliases():
            self.console.print(f"{symbol} -> {value}", markup=False)

    def run_source(self, source: str, *, echoed: bool = True) -> int:
        """Evaluate ``source`` and print every outcome; returns the number of errors."""
        errors = 0
        for outcome in self.interpreter.run(source):
            if isinstance(outcome, ImplError):
                errors += 1
                self.print_error(source, outcome, echoed=echoed)
            else:
                self.print_output(outcome)
        return errors

    def print_output(self, output: Output) -> None:
        if output.kind is not OutputKind.TEXT:
            self._print_message("error", "graphic output is not supported")
            return
        self.console.print(
            Text.assemble("  ", ("=", Style(color=self.config.output_color, bold=True)), " ", output.text or "")
        )

    def print_error(self, source: str, err: ImplError, *, echoed: bool = True) -> None:
        underline = self.render_underline(source, err.start, err.end, echoed=echoed)
        if underline is not None:
            self.error_console.print(underline)
        self._print_message(f"error[{err.stage}]", str(err))

    def render_underline(self, source: str, start: int, end: int, *, echoed: bool = True) -> Text | None:
        """Caret underline for ``[start, end)``; ``None`` for a range that should not be shown.

        When the input is ``echoed`` it is already on screen after the prompt, so the carets are
        shifted by the prompt width; otherwise the offending line is printed first.
        """
        if start == end and start != len(source):
            return None
        line_start = source.rfind("\n", 0, start) + 1
        line_end = source.find("\n", start)
        if line_end == -1:
            line_end = len(source)
        width = max(1, min(end, line_end) - start)

        text = Text()
        if echoed:
            text.append(" " * (len(PROMPT) + len(self.prompt_padding)))
        else:
            text.append(source[line_start:line_end] + "\n")
        text.append(" " * (start - line_start))
        text.append("^" * width, style=Style(color=self.config.span_color, bold=True))
        return text

    def _print_message(self, label: str, message: str) -> None:
        self.error_console.print(Text.assemble((label, Style(color="red", bold=True)), ": ", message))

    def repl(self) -> None:
        self.console.print(f"impl-eval v{__version__}", markup=False)
        while True:
            try:
                line = self.console.input(self.prompt())
            except (EOFError, KeyboardInterrupt):
                self.console.print()
                return
            if not self.process(line):
                return


app = typer.Typer(add_completion=False, help="Evaluate IMPL expressions.")


@app.command()
def main(
    script: Optional[Path] = typer.Option(None, "--in", "-i", help="Evaluate this file instead of starting the shell."),
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="TOML file with shell colors and prompt padding."),
    version: bool = typer.Option(False, "--version", "-V", help="Print the version and exit."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log evaluation details to stderr."),
) -> None:
    """Start the IMPL shell, or evaluate a script with --in."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)

    if version:
        typer.echo(f"impl-eval v{__version__}")
        raise typer.Exit()

    try:
        shell_config = ShellConfig() if config is None else ShellConfig.read(config)
    except ConfigError as exc:
        typer.echo(f"fatal-error[config]: {exc}", err=True)
        raise typer.Exit(code=2) from exc

    shell = Shell(config=shell_config)
    if script is None:
        shell.repl()
        return

    try:
        source = script.read_text(encoding="utf-8")
    except OSError as exc:
        typer.echo(f"fatal-error[args]: cannot read {script}: {exc.strerror or exc}", err=True)
        raise typer.Exit(code=2) from exc

    logger.debug("evaluating script %s", script)
    if shell.run_source(source, echoed=False):
        raise typer.Exit(code=1)

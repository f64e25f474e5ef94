"""CLI entry point: command definitions using Click.

Commands:
    init               Generate a template config file
    issues             Issues grouped by file with their source, as JSON
    comment            Insert SonarCloud markers above flagged lines of FILE
    strip              Remove SonarCloud markers from FILE
    resolve            Annotate FILE and let StackSpot AI fix the issues
    resolve-commented  Send FILE (markers included) to StackSpot AI as is
    resolve-all        Resolve the issues of every file of the project
"""

import functools
import logging
import sys

import click

from sonar_fix import __version__


# ---------------------------------------------------------------------------
# Helpers shared by all pipeline commands
# ---------------------------------------------------------------------------

def _make_pipeline(ctx: click.Context, document_path: str | None = None):
    """Build a Pipeline bound to a terminal host."""
    from sonar_fix.commands import Pipeline
    from sonar_fix.config import CredentialStore
    from sonar_fix.host import TerminalHost

    obj = ctx.obj
    host = TerminalHost(
        document_path=document_path,
        assume_yes=obj["yes"],
        verbose=obj["verbose"],
        output_path=obj["output_path"],
        pretty=obj["pretty"],
    )
    store = CredentialStore.open(
        workdir=obj["workdir"], config_path=obj["config_path"], prompt=host.prompt,
    )
    return Pipeline(host, store, workdir=obj["workdir"])


def _handle_errors(func):
    """Decorator that catches pipeline exceptions and exits cleanly."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        from sonar_fix.config import ConfigError
        from sonar_fix.errors import (
            AuthenticationError,
            AuthError,
            ExecutionCancelledError,
            ExecutionTimeoutError,
            NetworkError,
            NotFoundError,
            ParseError,
            PollError,
            SonarFixError,
            SubmissionError,
            WorkspaceError,
        )

        try:
            return func(*args, **kwargs)
        except ConfigError as exc:
            click.echo(f"Configuration error: {exc}", err=True)
        except AuthenticationError as exc:
            click.echo(f"Authentication error: {exc}", err=True)
        except NotFoundError as exc:
            click.echo(f"Not found: {exc}", err=True)
        except NetworkError as exc:
            click.echo(f"Network error: {exc}", err=True)
        except ParseError as exc:
            click.echo(f"Unexpected response: {exc}", err=True)
        except AuthError as exc:
            click.echo(f"StackSpot authentication error: {exc}", err=True)
        except SubmissionError as exc:
            click.echo(f"Remote command error: {exc}", err=True)
        except PollError as exc:
            click.echo(f"Remote command polling error: {exc}", err=True)
        except ExecutionTimeoutError as exc:
            click.echo(f"Timed out waiting for the remote command: {exc}", err=True)
        except ExecutionCancelledError as exc:
            click.echo(f"Cancelled: {exc}", err=True)
        except WorkspaceError as exc:
            click.echo(f"Workspace error: {exc}", err=True)
        except SonarFixError as exc:
            click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    return wrapper


def _run(ok: bool) -> None:
    # Graceful aborts (missing file, cancelled prompt) exit with 2
    if not ok:
        sys.exit(2)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------

@click.group()
@click.option("--config", "config_path", default=None,
              help="Path to the global configuration file "
                   "(default: $SONAR_FIX_CONFIG or ~/.config/sonar-fix/config.yaml).")
@click.option("--workdir", default=".", show_default=True,
              type=click.Path(file_okay=False, exists=True),
              help="Workspace root (git checkout of the analysed project).")
@click.option("--output", "output_path", default=None,
              help="Write JSON output to a file instead of stdout.")
@click.option("--pretty", is_flag=True, default=False,
              help="Pretty-print the JSON output.")
@click.option("--yes", is_flag=True, default=False,
              help="Continue without asking when the analysis looks stale.")
@click.option("--verbose", is_flag=True, default=False,
              help="Enable verbose logging and progress output.")
@click.version_option(__version__, prog_name="sonar-fix")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, workdir: str, output_path: str | None,
        pretty: bool, yes: bool, verbose: bool) -> None:
    """Overlay SonarCloud issues on source files and resolve them with StackSpot AI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="[%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["workdir"] = workdir
    ctx.obj["output_path"] = output_path
    ctx.obj["pretty"] = pretty
    ctx.obj["yes"] = yes
    ctx.obj["verbose"] = verbose


_branch_option = click.option(
    "--branch", default=None,
    help="Branch to analyse (default: the current git branch).",
)


# ---------------------------------------------------------------------------
# init
# ---------------------------------------------------------------------------

@cli.command("init")
@click.option("--output", "output_path", default=None,
              help="Path where the template config file will be written "
                   "(default: the global configuration path).")
@click.pass_context
def init_command(ctx: click.Context, output_path: str | None) -> None:
    """Generate a template configuration file."""
    from sonar_fix.config import ConfigError, generate_template, global_config_path

    target = output_path or global_config_path(ctx.obj["config_path"])
    try:
        generate_template(target)
        click.echo(f"Template written to '{target}'.")
        click.echo("Edit it with your SonarCloud token and StackSpot credentials.")
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# ---------------------------------------------------------------------------
# issues
# ---------------------------------------------------------------------------

@cli.command("issues")
@_branch_option
@click.pass_context
@_handle_errors
def issues_command(ctx: click.Context, branch: str | None) -> None:
    """Open issues grouped by file, with source lines and a summary."""
    _run(_make_pipeline(ctx).show_issues(branch))


# ---------------------------------------------------------------------------
# comment / strip
# ---------------------------------------------------------------------------

@cli.command("comment")
@click.argument("file", type=click.Path(dir_okay=False, exists=True))
@_branch_option
@click.pass_context
@_handle_errors
def comment_command(ctx: click.Context, file: str, branch: str | None) -> None:
    """Insert a SonarCloud marker above each flagged line of FILE."""
    _run(_make_pipeline(ctx, file).add_comments(branch))


@cli.command("strip")
@click.argument("file", type=click.Path(dir_okay=False, exists=True))
@click.pass_context
@_handle_errors
def strip_command(ctx: click.Context, file: str) -> None:
    """Remove SonarCloud markers from FILE."""
    _make_pipeline(ctx, file).strip_comments()


# ---------------------------------------------------------------------------
# resolve
# ---------------------------------------------------------------------------

@cli.command("resolve")
@click.argument("file", type=click.Path(dir_okay=False, exists=True))
@_branch_option
@click.pass_context
@_handle_errors
def resolve_command(ctx: click.Context, file: str, branch: str | None) -> None:
    """Annotate FILE with its issues and replace it with the AI's fix."""
    _run(_make_pipeline(ctx, file).resolve_current_file(branch))


@cli.command("resolve-commented")
@click.argument("file", type=click.Path(dir_okay=False, exists=True))
@click.pass_context
@_handle_errors
def resolve_commented_command(ctx: click.Context, file: str) -> None:
    """Send FILE, markers included, to the AI and replace it with the fix."""
    _run(_make_pipeline(ctx, file).resolve_commented_file())


@cli.command("resolve-all")
@_branch_option
@click.pass_context
@_handle_errors
def resolve_all_command(ctx: click.Context, branch: str | None) -> None:
    """Resolve the issues of every file of the project."""
    _run(_make_pipeline(ctx).resolve_all(branch))

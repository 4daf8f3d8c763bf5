from __future__ import annotations

import os
import sys

import click

from folio.builder import Builder
from folio.reporter import CliReporter
from folio.watcher import watch_site


@click.group()
@click.version_option(package_name="folio", prog_name="folio")
def cli() -> None:
    """Incremental static site builder."""


@cli.command("build")
@click.option(
    "-s",
    "--source",
    "source_dir",
    type=click.Path(file_okay=False, exists=True),
    default=".",
    show_default=True,
    help="The site source directory.",
)
@click.option(
    "-O",
    "--output",
    "output_dir",
    type=click.Path(file_okay=False),
    default=None,
    help="The output directory.  Defaults to build.target_dir of the "
    "configuration.",
)
@click.option(
    "-f",
    "--force",
    is_flag=True,
    help="Rebuild everything, ignoring recorded change information.",
)
@click.option(
    "--watch", is_flag=True, help="Rebuild whenever a source file changes."
)
@click.option(
    "-v",
    "--verbose",
    "verbosity",
    count=True,
    help="Increases the verbosity of the logging.",
)
def build_cmd(
    source_dir: str,
    output_dir: str | None,
    force: bool,
    watch: bool,
    verbosity: int,
) -> None:
    """Builds the site into the output directory."""
    with Builder(source_dir, output_dir) as builder, CliReporter(
        verbosity=verbosity
    ):
        success = builder.build(force=force)
        if not watch:
            sys.exit(0 if success else 1)

        temp_dir = os.path.join(builder.source_dir, builder.load_config().temp_dir)
        click.secho("Watching for file system changes", fg="cyan")
        for _ in watch_site(builder, ignore_paths=[temp_dir]):
            # A failed build has been reported; keep watching.
            builder.build()


@cli.command("failures")
@click.option(
    "-s",
    "--source",
    "source_dir",
    type=click.Path(file_okay=False, exists=True),
    default=".",
    show_default=True,
    help="The site source directory.",
)
@click.option(
    "-O",
    "--output",
    "output_dir",
    type=click.Path(file_okay=False),
    default=None,
    help="The output directory the site was built into.",
)
@click.argument("job_id", required=False)
def failures_cmd(source_dir: str, output_dir: str | None, job_id: str | None) -> None:
    """Lists the jobs whose last run failed.

    A failure is kept until its job next succeeds.  Given a JOB_ID, shows
    the traceback of that job's failure instead.
    """
    with Builder(source_dir, output_dir) as builder:
        failure_controller = builder.failure_controller
        if job_id is not None:
            failure = failure_controller.lookup_failure(job_id)
            if failure is None:
                raise click.ClickException(f"No failure recorded for {job_id}")
            click.echo(failure.traceback)
            return

        failures = failure_controller.iter_failures()
        for failure in failures:
            click.echo(f"{click.style(failure.job, fg='red')}: {failure.exception}")
        if failures:
            sys.exit(1)
        click.secho("No failures recorded.", fg="cyan")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

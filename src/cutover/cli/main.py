"""Entry point for the ``cutover`` command."""

import click

from cutover import __version__
from cutover.cli.commands.deploy import deploy


@click.group(name="cutover")
@click.version_option(version=__version__, prog_name="cutover")
def cli() -> None:
    """Cutover - redeploy a container on a single Docker host.

    \b
    EXAMPLES:

        Deploy using cutover.yml and the CI environment:
            cutover deploy run

        Show the outcome of the last deployment:
            cutover deploy status
    """
    pass


cli.add_command(deploy)


def main() -> None:
    """Run the CLI."""
    cli()


if __name__ == "__main__":
    main()

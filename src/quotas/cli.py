"""quotas CLI - ResourceQuota manifests from per-environment values files."""

from __future__ import annotations

import rich_click as click

from quotas import __version__
from quotas.commands import config, render, schema, validate

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.HEADER_TEXT = "quotas - ResourceQuota manifest renderer"
click.rich_click.STYLE_HEADER_TEXT = "bold magenta"
click.rich_click.STYLE_OPTION = "cyan"
click.rich_click.STYLE_COMMAND = "bold yellow"
click.rich_click.ERRORS_SUGGESTION = "See 'quotas --help' for the available commands."
click.rich_click.MAX_WIDTH = 100

CLI_HELP = """Validate quota values and render ResourceQuota manifests.

Each environment's values file lists namespaces and their hard limits. Every
entry becomes one ResourceQuota named <namespace>-quota.

\b
[bold cyan]Common commands:[/bold cyan]
  [bold yellow]quotas validate --all-envs[/bold yellow]      Check every environment
  [bold yellow]quotas render list -e prod[/bold yellow]      Show the quotas prod renders
  [bold yellow]quotas render apply -e prod[/bold yellow]     Render and store manifests
  [bold yellow]quotas render diff -e prod[/bold yellow]      Diff against the stored baseline
  [bold yellow]quotas schema apply[/bold yellow]             Write values.schema.json
"""


@click.group(help=CLI_HELP)
@click.version_option(__version__, prog_name="quotas")
def cli() -> None:
    pass


cli.add_command(config)
cli.add_command(render)
cli.add_command(schema)
cli.add_command(validate)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

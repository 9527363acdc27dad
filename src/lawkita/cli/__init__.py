"""CLI entry points for LawKita.

Provides command-line tools for:
- Crawl jobs (news, judgments, Bar directory)
"""

import click

from .crawl import cli as crawl_cli


@click.group()
@click.version_option(version="0.1.0", prog_name="lawkita")
def main():
    """LawKita - legal case pipeline.

    Command-line tools for crawling sources and building case records.
    """
    pass


main.add_command(crawl_cli, name="crawl")


if __name__ == "__main__":
    main()

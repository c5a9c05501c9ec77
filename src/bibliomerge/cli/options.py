# ABOUTME: Shared Click options for bibliomerge CLI commands.
# ABOUTME: Provides reusable decorators for provider selection and aggregation settings.

from pathlib import Path

import click

from bibliomerge.metadata.aggregator import AggregatorOptions

_DEFAULTS = AggregatorOptions()

timeout_option = click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=_DEFAULTS.timeout,
    show_default=True,
    help="Global deadline in seconds for all providers to answer.",
)

min_providers_option = click.option(
    "--min-providers",
    type=click.IntRange(min=0),
    default=_DEFAULTS.min_providers,
    show_default=True,
    help="Fail unless at least this many providers answer.",
)

epub_option = click.option(
    "--epub",
    "epub_paths",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    multiple=True,
    help="EPUB whose embedded metadata joins the lookup as a provider (repeatable).",
)

offline_option = click.option(
    "--offline",
    is_flag=True,
    default=False,
    help="Skip online catalogs and use only embedded EPUB metadata.",
)

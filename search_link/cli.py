import json
import logging
from typing import Any, Optional

import click

import search_link.middleware.index as index_
from search_link.environment import Environment
from search_link.models.executor import HttpMethod
from search_link.models.prepared_query import PreparedQuery
from search_link.models.transport import configure_transport
from search_link.models.utils import ExitCode

logger = logging.getLogger(__name__)

# ################### UNIVERSAL ####################


class Context(object):
    def __init__(self, config_file) -> None:
        self.config_file = config_file
        try:
            self.env = Environment(config_file=config_file)
            configure_transport(self.env.transport_config)
        except Exception as e:
            raise click.ClickException(str(e))
        self.elasticsearch = self.env.elasticsearch()
        self.json = False


def parse_json_option(value: Optional[str], name: str) -> Any:
    if value is None:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        raise click.BadParameter(f"Invalid JSON format for {name}.")


def parse_query_option(value: Optional[str]) -> PreparedQuery:
    query_dsl = parse_json_option(value, "query")
    if query_dsl is not None and not isinstance(query_dsl, dict):
        raise click.BadParameter("The query must be a JSON object.")
    return PreparedQuery(query_dsl)


def echo_result(exitcode: ExitCode, message: Optional[str]) -> None:
    if exitcode != ExitCode.SUCCESS:
        raise click.ClickException(message)
    if message is not None:
        click.echo(message)


@click.group()
@click.option("--config-file", default="/config/search_link.yaml", help="Path to config file")
@click.option("--json", is_flag=True)
@click.option('-v', '--verbose', count=True, help="Verbosity level. Default is warn, -v is info, -vv is debug.")
@click.pass_context
def cli(ctx, config_file, json, verbose):
    logging.basicConfig(level=logging.WARN - (10 * verbose))
    logger.info(f"Logging set to {logging.getLevelName(logger.getEffectiveLevel())}")
    ctx.obj = Context(config_file)
    ctx.obj.json = json


# ##################### REQUESTS ###################


@cli.command(name="request")
@click.option('-X', '--request', 'method', default='GET', help="HTTP method to use",
              type=click.Choice([m.name for m in HttpMethod if m is not HttpMethod.HEAD]))
@click.option('-d', '--data', help='JSON body to send with the request.')
@click.option('--null-on-error', is_flag=True, default=False, help="Print nothing instead of failing on an error.")
@click.argument('endpoint', required=True)
@click.pass_obj
def request_cmd(ctx, method, data, null_on_error, endpoint):
    """Send a request to the index, or to the cluster if ENDPOINT starts with `/`, and print the response."""
    post_data = parse_json_option(data, "data")
    exitcode, message = index_.request(ctx.elasticsearch, endpoint, method=HttpMethod[method],
                                       post_data=post_data, null_on_error=null_on_error)
    echo_result(exitcode, message)


@cli.command(name="mapping")
@click.pass_obj
def mapping_cmd(ctx):
    """Print the mapping of the index"""
    echo_result(*index_.mapping(ctx.elasticsearch, as_json=ctx.json))


@cli.command(name="count")
@click.option('--query', help="Query DSL as JSON. Defaults to match_all.")
@click.pass_obj
def count_cmd(ctx, query):
    """Count the documents matching a query"""
    echo_result(*index_.count(ctx.elasticsearch, parse_query_option(query), as_json=ctx.json))


@cli.command(name="aggregate")
@click.option('--field', help="Field targeted by the aggregations, used to detect nested fields.")
@click.option('--filter/--no-filter', 'need_filter', default=True,
              help="Move the query's matching nested clause into the aggregation as a filter.")
@click.option('--query', help="Query DSL as JSON. Defaults to match_all.")
@click.argument('aggs', required=True)
@click.pass_obj
def aggregate_cmd(ctx, field, need_filter, query, aggs):
    """Run named aggregations, given as a JSON object, and print their results"""
    echo_result(*index_.aggregate(ctx.elasticsearch, parse_json_option(aggs, "aggs"), field=field,
                                  need_filter=need_filter, query=parse_query_option(query), as_json=ctx.json))


# ##################### BULK ###################


@cli.command(name="bulk")
@click.argument('source', type=click.File('r'))
@click.pass_obj
def bulk_cmd(ctx, source):
    """Index newline-delimited JSON documents from SOURCE (use - for stdin)"""
    echo_result(*index_.bulk_load(ctx.elasticsearch, source))


@cli.command(name="bulk-concurrency")
@click.pass_obj
def bulk_concurrency_cmd(ctx):
    """Show how many concurrent workers a bulk session will use"""
    echo_result(*index_.bulk_concurrency(ctx.elasticsearch, as_json=ctx.json))


#################################################

def main():
    cli()


if __name__ == "__main__":
    main()

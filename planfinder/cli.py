"""
Command-line interface for PlanFinder.
Provides CLI commands for filename checks, catalog search and system management.
"""

import click
import sys
from loguru import logger

from .config import Settings, load_config
from .core.filename_codec import generate_filename, parse_multiple_filenames
from .indexing.database import DatabaseManager
from .search.plan_filter import SearchFilters, search_plans


@click.group()
@click.option('--config', default='config.yaml', help='Configuration file path')
@click.pass_context
def cli(ctx, config):
    """PlanFinder CLI - catalog and search for housing plans."""
    ctx.ensure_object(dict)
    ctx.obj['config'] = load_config(config)


@cli.command()
@click.argument('filenames', nargs=-1, required=True)
def parse(filenames):
    """Parse plan filenames and show the extracted metadata."""
    results = parse_multiple_filenames(filenames)
    failures = 0

    for filename, result in zip(filenames, results):
        if result.success:
            data = result.data
            click.echo(f"OK   {filename}")
            click.echo(f"     Title: {data.title}")
            click.echo(f"     Layout: {data.layout} | Floors: {data.floors} | Direction: {data.direction}")
            click.echo(f"     Building: {data.total_area} tsubo | Site: {data.site_area} tsubo")
            if data.features:
                click.echo(f"     Features: {', '.join(data.features)}")
        else:
            failures += 1
            click.echo(f"NG   {filename}")
            click.echo(f"     [{result.error.kind.value}] {result.error.message}")

    click.echo(f"\n{len(filenames) - failures} valid, {failures} invalid")
    if failures:
        sys.exit(1)


@cli.command()
@click.option('--total-area', type=float, default=0, help='Building area in tsubo')
@click.option('--layout', default='-', help='Layout (2LDK-6LDK)')
@click.option('--floors', default='-', help='Floors (平屋/2階建て/3階建て)')
@click.option('--direction', default='-', help='Approach direction')
@click.option('--site-area', type=float, default=0, help='Site area in tsubo')
@click.option('--feature', 'features', multiple=True, help='Feature tag (repeatable)')
def generate(total_area, layout, floors, direction, site_area, features):
    """Generate a catalog filename from plan fields."""
    click.echo(generate_filename(
        total_area=total_area,
        layout=layout,
        floors=floors,
        direction=direction,
        site_area=site_area,
        features=list(features),
    ))


@cli.command()
@click.option('--company', required=True, help='Company ID')
@click.option('--layout', help='Filter by layout')
@click.option('--floors', help='Filter by floors')
@click.option('--direction', help='Filter by approach direction')
@click.option('--min-area', type=float, help='Minimum building area (tsubo)')
@click.option('--max-area', type=float, help='Maximum building area (tsubo)')
@click.option('--min-site-area', type=float, help='Minimum site area (tsubo)')
@click.option('--max-site-area', type=float, help='Maximum site area (tsubo)')
@click.option('--feature', 'features', multiple=True, help='Required feature (repeatable)')
@click.option('--favorites', is_flag=True, help='Only favorite plans')
@click.option('--limit', default=20, help='Maximum number of results')
@click.pass_context
def search(ctx, company, layout, floors, direction, min_area, max_area,
           min_site_area, max_site_area, features, favorites, limit):
    """Search a company's plans."""
    settings = Settings.from_config(ctx.obj['config'])

    try:
        db_manager = DatabaseManager(settings.database_url)

        filters = SearchFilters(
            layout=layout,
            floors=floors,
            min_area=min_area,
            max_area=max_area,
            min_site_area=min_site_area,
            max_site_area=max_site_area,
            direction=direction,
            features=list(features),
            favorite_only=favorites,
        )
        results = search_plans(db_manager.list_plans(company), filters)

        click.echo(f"Found {len(results)} plans\n")
        for i, plan in enumerate(results[:limit], 1):
            star = "*" if plan['favorite'] else " "
            click.echo(f"{i}. {star} {plan['title']}  [{plan['id']}]")
            click.echo(f"   Site: {plan['siteArea']} tsubo | Created: {plan['createdAt']}")
            if plan['features']:
                click.echo(f"   Features: {', '.join(plan['features'])}")

        db_manager.close()

    except Exception as e:
        logger.error(f"Search failed: {e}")
        click.echo(f"Search failed: {e}")
        sys.exit(1)


@cli.command()
@click.option('--company', help='Limit statistics to one company')
@click.pass_context
def stats(ctx, company):
    """Show catalog statistics."""
    settings = Settings.from_config(ctx.obj['config'])

    try:
        db_manager = DatabaseManager(settings.database_url)
        stats = db_manager.get_database_stats(company)

        click.echo("PlanFinder Statistics")
        click.echo("=" * 30)
        click.echo(f"Plans: {stats.get('plans', 0)}")
        click.echo(f"Favorites: {stats.get('favorites', 0)}")
        click.echo(f"Drawings: {stats.get('drawings', 0)}")
        click.echo(f"Photos: {stats.get('photos', 0)}")

        for label, key in (("By Layout", 'by_layout'), ("By Floors", 'by_floors')):
            breakdown = stats.get(key, {})
            if breakdown:
                click.echo(f"\n{label}:")
                for value, count in sorted(breakdown.items()):
                    click.echo(f"  {value}: {count}")

        db_manager.close()

    except Exception as e:
        logger.error(f"Stats failed: {e}")
        click.echo(f"Stats failed: {e}")
        sys.exit(1)


@cli.command()
@click.option('--host', default='0.0.0.0', help='Host to bind to')
@click.option('--port', default=8000, help='Port to bind to')
@click.option('--reload', is_flag=True, help='Enable auto-reload')
def serve(host, port, reload):
    """Start the PlanFinder API server."""
    try:
        import uvicorn

        click.echo(f"Starting PlanFinder API server on {host}:{port}")

        uvicorn.run(
            "planfinder.api.main:app",
            host=host,
            port=port,
            reload=reload
        )

    except Exception as e:
        logger.error(f"Server failed: {e}")
        click.echo(f"Server failed: {e}")
        sys.exit(1)


@cli.command()
@click.pass_context
def setup(ctx):
    """Create the database tables and storage directories."""
    settings = Settings.from_config(ctx.obj['config'])

    try:
        from .setup_db import setup as run_setup
        run_setup(settings)
        click.echo("Setup completed successfully!")

    except Exception as e:
        logger.error(f"Setup failed: {e}")
        click.echo(f"Setup failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    cli()

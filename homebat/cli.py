#!/usr/bin/env python3
"""
Command-line interface for homebat.
Plans a price-driven schedule or splits a fleet power target from files.
"""

import click
import logging
import sys
from pathlib import Path

from homebat import __version__
from homebat.io import DataLoader, DataWriter, generate_template, create_sample_prices
from homebat.schedule import compute_schedule, schedule_summary
from homebat.distribution import compute_distribution, aggregate_target
from homebat.optimization.lp_solver import GurobiSolver
from homebat.utils.validators import generate_validation_report

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="homebat")
def cli():
    """homebat - price-driven battery schedules and fleet power distribution."""
    pass


@cli.command()
@click.argument('config_file', type=click.Path(exists=True))
@click.argument('prices_file', type=click.Path(exists=True))
@click.option('--soc', type=float, default=None,
              help='Start SoC in percent (overrides config)')
@click.option('--elapsed', type=float, default=None,
              help='Minutes already elapsed in the first period')
@click.option('--min-price-delta', type=float, default=None,
              help='Minimum profitable price swing (overrides config)')
@click.option('--output', '-o', type=click.Path(), default=None,
              help='Save the schedule to this file')
@click.option('--format', 'output_format', type=click.Choice(['csv', 'json']),
              default='csv', help='Output file format')
@click.option('--time-limit', type=float, default=None,
              help='Maximum solve time in seconds')
@click.option('--verbose', '-v', is_flag=True,
              help='Show detailed output')
def schedule(config_file, prices_file, soc, elapsed, min_price_delta, output,
             output_format, time_limit, verbose):
    """
    Compute a charge/discharge schedule for a price series.

    Example:
        homebat schedule config.yaml prices.csv --soc 50 -o schedule.csv
    """
    try:
        if verbose:
            logging.getLogger().setLevel(logging.DEBUG)

        config = DataLoader.load_config(config_file)
        prices = DataLoader.load_prices(prices_file)

        battery = config.battery
        if soc is not None:
            battery = battery.copy(update={'start_soc_percent': soc})

        updates = {}
        if elapsed is not None:
            updates['elapsed_minutes_in_first_period'] = elapsed
        if min_price_delta is not None:
            updates['min_price_delta'] = min_price_delta
        options = config.schedule.copy(update=updates) if updates else config.schedule

        solver = GurobiSolver(time_limit=time_limit, verbose=verbose)

        click.echo(f"Optimizing {min(len(prices), options.horizon_limit)} periods...")
        result = compute_schedule(prices, battery, options, solver=solver)

        click.echo("\nPeriod | Start            | Power W | Minutes | SoC % | Price")
        click.echo("-------|------------------|---------|---------|-------|-------")
        for e in result:
            start = e.start_time.strftime('%Y-%m-%d %H:%M') if e.start_time else '-'
            click.echo(f" {e.index:5d} | {start:16s} | {e.power_watts:7d} | "
                       f"{e.active_minutes:7d} | {e.soc_percent:5d} | {e.price:.4f}")

        summary = schedule_summary(result)
        click.echo(f"\nObjective: {summary['objective_value']:.4f}")
        click.echo(f"Stored: {summary['stored_kwh']:.2f} kWh, "
                   f"released: {summary['released_kwh']:.2f} kWh")

        if output:
            DataWriter.save_schedule(result, output, format=output_format)
            click.echo(f"\n✓ Schedule saved to {output}")

    except Exception as e:
        click.echo(f"✗ Scheduling failed: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


@cli.command()
@click.argument('fleet_file', type=click.Path(exists=True))
@click.option('--target', type=float, default=None,
              help='Aggregate power target in W (+ charge, - discharge)')
@click.option('--grid-power', type=float, default=None,
              help='Grid meter reading in W (+ import); derives the target from last targets')
@click.option('--offset', type=float, default=0.0,
              help='Grid setpoint in W used with --grid-power')
@click.option('--min-load', type=float, default=None,
              help='Minimum load per battery in W')
@click.option('--config', 'config_file', type=click.Path(exists=True), default=None,
              help='Configuration file with distribution settings')
def distribute(fleet_file, target, grid_power, offset, min_load, config_file):
    """
    Split an aggregate power target over a fleet snapshot.

    Example:
        homebat distribute fleet.yaml --target -1500
        homebat distribute fleet.yaml --grid-power 420
    """
    try:
        fleet = DataLoader.load_fleet(fleet_file)
        if target is None:
            if grid_power is None:
                raise click.UsageError("Give either --target or --grid-power")
            target = aggregate_target(fleet, grid_power, offset)
            click.echo(f"Derived target: {target:.0f} W")
        settings = DataLoader.load_config(config_file).distribution if config_file else None

        if min_load is None:
            min_load = settings.min_load_watts if settings else 50.0
        tuning = settings.tuning if settings else None

        targets = compute_distribution(fleet, target, min_load, tuning)

        for t in targets:
            click.echo(f"{t.id}: {t.target_watts:.0f} W")
        click.echo(f"Total: {sum(t.target_watts for t in targets):.0f} W (requested {target:.0f} W)")

    except Exception as e:
        click.echo(f"✗ Distribution failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('config_file', type=click.Path(exists=True))
@click.option('--prices', 'prices_file', type=click.Path(exists=True),
              help='Price series to validate against the configuration')
@click.option('--fleet', 'fleet_file', type=click.Path(exists=True),
              help='Fleet snapshot to validate')
@click.option('--report', '-r', type=click.Path(),
              help='Save validation report to file')
@click.option('--strict/--no-strict', default=True,
              help='Fail on validation errors')
def validate(config_file, prices_file, fleet_file, report, strict):
    """
    Validate configuration and inputs.

    Example:
        homebat validate config.yaml --prices prices.csv --report validation.txt
    """
    try:
        config = DataLoader.load_config(config_file)
        prices = DataLoader.load_prices(prices_file) if prices_file else None
        fleet = DataLoader.load_fleet(fleet_file) if fleet_file else None

        text = generate_validation_report(
            report,
            prices=prices,
            battery=config.battery if prices is not None else None,
            options=config.schedule,
            batteries=fleet,
        )
        click.echo(text)

        if strict and 'INVALID' in text:
            sys.exit(1)

    except Exception as e:
        click.echo(f"✗ Validation failed: {e}", err=True)
        sys.exit(1)


@cli.command('generate-template')
@click.option('--output-dir', '-o', type=click.Path(), default='.',
              help='Output directory')
@click.option('--periods', type=int, default=24,
              help='Number of periods for the sample price series')
@click.option('--interval', type=int, default=60,
              help='Period length in minutes for the sample price series')
def generate_template_cmd(output_dir, periods, interval):
    """
    Generate a template configuration and a sample price series.

    Example:
        homebat generate-template -o templates/
    """
    try:
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)

        config_path = output_path / 'config_template.yaml'
        generate_template(config_path)
        click.echo(f"✓ Config template saved to {config_path}")

        prices_path = output_path / 'prices_template.csv'
        create_sample_prices(prices_path, periods=periods, interval_minutes=interval)
        click.echo(f"✓ Price template saved to {prices_path}")

        click.echo("\nEdit the templates and run:")
        click.echo(f"  homebat schedule {config_path} {prices_path}")

    except Exception as e:
        click.echo(f"✗ Template generation failed: {e}", err=True)
        sys.exit(1)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == '__main__':
    main()

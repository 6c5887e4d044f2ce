#!/usr/bin/env python3
"""
Command Line Interface for the Terragrunt Scaffold Tool

This module provides the main CLI interface for generating Terragrunt
configurations from Terraform modules.
"""

import click
import logging
import logging.handlers
import sys
import os
from typing import List, Optional
import json
import yaml
from tabulate import tabulate

from . import __version__
from .config import ConfigManager, LoggingConfig, DEFAULT_CONFIG_TEMPLATE
from .errors import ScaffoldError
from .inputs import InputDescriptor, VariableExtractor, classify_inputs
from .orchestrator import ScaffoldOrchestrator


logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "terragrunt_scaffold"


def configure_logging(settings: LoggingConfig):
    """Attach console and rotating file handlers to the package logger"""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    package_logger.setLevel(getattr(logging, settings.level.upper(), logging.INFO))
    package_logger.propagate = False
    formatter = logging.Formatter(settings.format)

    if settings.console:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    if settings.file:
        file_handler = logging.handlers.RotatingFileHandler(
            settings.file,
            maxBytes=settings.max_file_size,
            backupCount=settings.backup_count
        )
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    if not package_logger.handlers:
        package_logger.addHandler(logging.NullHandler())


def _load_config(ctx, **cli_args):
    config_manager = ConfigManager()
    cli_args.update({
        'verbose': ctx.obj.get('verbose', False),
        'quiet': ctx.obj.get('quiet', False)
    })
    config = config_manager.load_config(
        config_file=ctx.obj.get('config_file'),
        cli_args=cli_args
    )
    configure_logging(config.logging)
    return config_manager, config


@click.group()
@click.version_option(version=__version__)
@click.option('--config', '-c', type=click.Path(exists=True),
              help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True,
              help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True,
              help='Enable quiet mode (warnings and errors only)')
@click.pass_context
def cli(ctx, config, verbose, quiet):
    """
    Terragrunt Scaffold Tool

    Generates a Terragrunt configuration for a Terraform module, listing the
    module's required and optional inputs.
    """
    ctx.ensure_object(dict)

    ctx.obj['config_file'] = config
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet


@cli.command()
@click.argument('module_url')
@click.argument('template_url', required=False)
@click.option('--output-dir', '-o', default='.', type=click.Path(file_okay=False),
              help='Directory receiving the generated files')
@click.option('--var', 'variables', multiple=True,
              help='Template variable as KEY=VALUE (can be specified multiple times)')
@click.option('--var-file', 'var_files', multiple=True, type=click.Path(exists=True, dir_okay=False),
              help='YAML file with template variables (can be specified multiple times)')
@click.option('--no-format', is_flag=True,
              help='Skip formatting of the generated files')
@click.option('--no-release-lookup', is_flag=True,
              help='Do not pin unversioned sources to their latest release')
@click.pass_context
def scaffold(ctx, module_url, template_url, output_dir, variables, var_files,
             no_format, no_release_lookup):
    """
    Generate a Terragrunt configuration for a module

    MODULE_URL is the module source, TEMPLATE_URL an optional template folder
    rendered instead of the module's own templates or the default one.
    """
    try:
        config_manager, config = _load_config(
            ctx,
            no_format=no_format,
            no_release_lookup=no_release_lookup
        )

        click.echo(f"Scaffolding {module_url}...")

        orchestrator = ScaffoldOrchestrator(
            config=config,
            credential=config_manager.get_release_token()
        )
        result = orchestrator.run(
            module_url,
            template_url=template_url,
            output_dir=output_dir,
            variables=list(variables),
            var_files=list(var_files)
        )

        click.echo(f"\nSuccess Scaffold generated in {result.output_dir}")
        click.echo(f"    Source: {result.source_url}")
        click.echo(f"    Required inputs: {len(result.required)}")
        click.echo(f"    Optional inputs: {len(result.optional)}")
        for path in result.files:
            click.echo(f"   - {path}")
        if not result.formatted:
            click.echo("    Files were not formatted")

    except ScaffoldError as e:
        click.echo(f"Error Scaffold failed during {e.stage}: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@click.argument('module_dir', type=click.Path(exists=True, file_okay=False))
@click.option('--format', 'output_format', type=click.Choice(['table', 'json', 'yaml']),
              default='table', help='Output format')
@click.pass_context
def inputs(ctx, module_dir, output_format):
    """
    List the input variables of a local module

    Required inputs are listed first, followed by optional inputs.
    """
    try:
        _load_config(ctx)

        required, optional = classify_inputs(VariableExtractor().extract(module_dir))

        if output_format == 'table':
            _display_inputs_table(required, optional)
        else:
            data = {
                'required': [descriptor.to_dict() for descriptor in required],
                'optional': [descriptor.to_dict() for descriptor in optional]
            }
            if output_format == 'json':
                click.echo(json.dumps(data, indent=2))
            else:
                click.echo(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

    except ScaffoldError as e:
        click.echo(f"Error Input extraction failed: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@click.option('--output-file', '-o', default='tg-scaffold.yaml',
              help='Output configuration file')
@click.option('--format', 'config_format', type=click.Choice(['yaml', 'json']),
              default='yaml', help='Configuration file format')
def init_config(output_file, config_format):
    """
    Create a default configuration file

    This command creates a default configuration file with all available
    options and their default values.
    """
    try:
        if os.path.exists(output_file):
            if not click.confirm(f"Configuration file {output_file} already exists. Overwrite?"):
                click.echo("Configuration file creation cancelled.")
                return

        with open(output_file, 'w') as f:
            if config_format == 'yaml':
                f.write(DEFAULT_CONFIG_TEMPLATE)
            else:
                config_dict = yaml.safe_load(DEFAULT_CONFIG_TEMPLATE)
                json.dump(config_dict, f, indent=2)

        click.echo(f"Success Default configuration file created: {output_file}")
        click.echo(" Edit this file to customize settings for your environment.")

    except OSError as e:
        click.echo(f"Error Failed to create configuration file: {str(e)}", err=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def validate_config(ctx):
    """
    Validate configuration file

    This command validates the configuration file against the configuration
    schema.
    """
    try:
        config_manager, _ = _load_config(ctx)

        click.echo("Success Configuration validation passed!")

        summary = config_manager.get_config_summary()
        click.echo("\n Configuration Summary:")
        for key, value in summary.items():
            click.echo(f"   {key}: {value}")

    except ScaffoldError as e:
        click.echo(f"Error Configuration validation failed: {str(e)}", err=True)
        sys.exit(1)


def _display_inputs_table(required: List[InputDescriptor], optional: List[InputDescriptor]):
    """Display module inputs in table format"""
    headers = ['Name', 'Type', 'Default', 'Description']

    click.echo("\n Required Inputs:")
    if required:
        rows = [[d.name, d.type, '', _first_line(d.description)] for d in required]
        click.echo(tabulate(rows, headers=headers, tablefmt='grid'))
    else:
        click.echo("   (none)")

    click.echo("\n Optional Inputs:")
    if optional:
        rows = [[d.name, d.type, d.default_value, _first_line(d.description)] for d in optional]
        click.echo(tabulate(rows, headers=headers, tablefmt='grid'))
    else:
        click.echo("   (none)")


def _first_line(text: Optional[str]) -> str:
    return (text or '').splitlines()[0] if text else ''


def main():
    """Main entry point for the CLI"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nWarning  Operation cancelled by user.")
        sys.exit(1)


if __name__ == '__main__':
    main()

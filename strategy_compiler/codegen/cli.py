"""CLI commands for strategy code generation.

This module provides Typer-based CLI commands for compiling builder
documents (JSON or YAML) into strategy modules.

Usage:
    strategy-compiler generate strategy.json --name RsiDip --output ./RsiDip.py
    strategy-compiler validate strategy.yaml --name RsiDip
    strategy-compiler normalize legacy.json
    strategy-compiler mirror strategy.json
    strategy-compiler indicators
"""

import json
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
import yaml

from strategy_compiler.codegen.errors import CodeGenerationError
from strategy_compiler.codegen.filters import snake_case
from strategy_compiler.codegen.generator import StrategyCodeGenerator
from strategy_compiler.codegen.indicators import DEFAULT_REGISTRY
from strategy_compiler.codegen.limits import check_document_limits
from strategy_compiler.codegen.naming import name_to_class_name
from strategy_compiler.codegen.normalizer import extract_builder_document, normalize_document
from strategy_compiler.core.config import ConfigurationError, load_config, validate_config
from strategy_compiler.core.logging import setup_logging

app = typer.Typer(
    name="strategy-compiler",
    help="Compile strategy builder documents into Freqtrade strategy code.",
    no_args_is_help=True,
)

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to strategy-compiler.yaml"),
]


def _load_document(path: Path) -> Any:
    """Read a JSON or YAML document from disk."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        typer.secho(f"Error: cannot read {path}: {e}", fg=typer.colors.RED)
        raise typer.Exit(1) from None

    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        typer.secho(f"Error: {path} is not valid: {e}", fg=typer.colors.RED)
        raise typer.Exit(1) from None
    except RecursionError:
        typer.secho(f"Error: {path} is nested too deeply", fg=typer.colors.RED)
        raise typer.Exit(1) from None


def _generator(config_path: Optional[Path], log_dir: Optional[Path] = None) -> StrategyCodeGenerator:
    try:
        config = load_config(config_path)
    except ConfigurationError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(1) from None

    if log_dir is not None:
        setup_logging(config, log_dir)
    for warning in validate_config(config):
        typer.secho(f"Config warning: {warning}", fg=typer.colors.YELLOW)
    return StrategyCodeGenerator(config)


def _dump(data: Any, as_yaml: bool) -> str:
    if as_yaml:
        return yaml.safe_dump(data, sort_keys=False)
    return json.dumps(data, indent=2)


@app.command("generate")
def generate(
    document: Annotated[Path, typer.Argument(help="Builder document (.json, .yaml)")],
    name: Annotated[
        Optional[str],
        typer.Option("--name", "-n", help="Strategy class name (PascalCase)"),
    ] = None,
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Output file or directory"),
    ] = None,
    overwrite: Annotated[
        bool,
        typer.Option("--overwrite", "-f", help="Overwrite existing output file"),
    ] = False,
    stdout: Annotated[
        bool,
        typer.Option("--stdout", help="Print generated code to stdout"),
    ] = False,
    config: ConfigOption = None,
    log_dir: Annotated[
        Optional[Path],
        typer.Option("--log-dir", help="Write rotating log files to this directory"),
    ] = None,
):
    """Generate a strategy module from a builder document.

    Examples:
        # Generate and save to file
        strategy-compiler generate rsi.json --name RsiDip --output ./strategies/

        # Generate and print to stdout
        strategy-compiler generate rsi.yaml --name RsiDip --stdout
    """
    class_name = name or name_to_class_name(document.stem)
    generator = _generator(config, log_dir)
    result = generator.generate(_load_document(document), class_name)

    if not result.success:
        typer.secho(f"Error: {result.error}", fg=typer.colors.RED)
        raise typer.Exit(1)

    for warning in result.warnings:
        typer.secho(f"Warning: {warning}", fg=typer.colors.YELLOW, err=True)

    if stdout or output is None:
        typer.echo(result.code, nl=False)
        return

    if output.is_dir() or not output.suffix:
        target = output / f"{snake_case(class_name)}.py"
    else:
        target = output
    if target.exists() and not overwrite:
        typer.secho(
            f"Error: File already exists: {target}. Use --overwrite to replace.",
            fg=typer.colors.RED,
        )
        raise typer.Exit(1)

    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(result.code, encoding="utf-8")
    typer.secho(f"Generated: {target}", fg=typer.colors.GREEN)


@app.command("validate")
def validate(
    document: Annotated[Path, typer.Argument(help="Builder document (.json, .yaml)")],
    name: Annotated[
        Optional[str],
        typer.Option("--name", "-n", help="Strategy class name (PascalCase)"),
    ] = None,
    config: ConfigOption = None,
):
    """Compile a document without saving, reporting errors and warnings.

    Examples:
        strategy-compiler validate rsi.json
        strategy-compiler validate rsi.json --name RsiDip
    """
    class_name = name or name_to_class_name(document.stem)
    result = _generator(config).generate(_load_document(document), class_name)

    if not result.success:
        typer.secho(f"✗ {document.name}: {result.error}", fg=typer.colors.RED)
        raise typer.Exit(1)

    if result.warnings:
        typer.secho(f"⚠ {document.name}: Warnings", fg=typer.colors.YELLOW)
        for warning in result.warnings:
            typer.echo(f"  WARNING: {warning}")
    typer.secho(f"✓ {document.name}: All checks passed", fg=typer.colors.GREEN)


@app.command("normalize")
def normalize(
    document: Annotated[Path, typer.Argument(help="Builder document (.json, .yaml)")],
    as_yaml: Annotated[bool, typer.Option("--yaml", help="Print YAML instead of JSON")] = False,
    config: ConfigOption = None,
):
    """Print the canonical (version 2) form of a document."""
    generator = _generator(config)
    raw = _load_document(document)
    try:
        check_document_limits(raw, generator.config.limits)
        canonical = normalize_document(extract_builder_document(raw))
    except CodeGenerationError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(1) from None
    typer.echo(_dump(canonical, as_yaml))


@app.command("mirror")
def mirror(
    document: Annotated[Path, typer.Argument(help="Builder document (.json, .yaml)")],
    as_yaml: Annotated[bool, typer.Option("--yaml", help="Print YAML instead of JSON")] = False,
    config: ConfigOption = None,
):
    """Print the document with its mirror policy applied."""
    generator = _generator(config)
    try:
        strategy = generator.prepare(_load_document(document))
    except CodeGenerationError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(1) from None
    typer.echo(_dump(strategy.model_dump(mode="json", by_alias=True), as_yaml))


@app.command("indicators")
def indicators():
    """List supported indicator types, their parameters and outputs."""
    typer.secho("Indicator Types:", fg=typer.colors.CYAN, bold=True)
    for indicator_type in DEFAULT_REGISTRY.types():
        spec = DEFAULT_REGISTRY.get(indicator_type)
        params = ", ".join(f"{p.name}={p.default}" for p in spec.params) or "-"
        outputs = ", ".join(o or "(value)" for o in spec.outputs)
        typer.echo(f"  {indicator_type:12} {spec.description}")
        typer.echo(f"  {'':12} params: {params}; outputs: {outputs}")


def main():
    """Entry point for the strategy-compiler CLI."""
    app()


if __name__ == "__main__":
    main()

"""
onnx-to-c command line interface
"""

import logging
import sys

import click

from .compiler import OnnxToCCompiler
from .errors import CompilationError


def parse_dim(ctx, param, values):
    """Turn repeated NAME:VALUE options into a dict."""
    dims = {}
    for value in values:
        name, sep, size = value.rpartition(":")
        if not sep or not name or not size.isdigit():
            raise click.BadParameter(f"expected NAME:VALUE with a non-negative VALUE, got '{value}'")
        dims[name] = int(size)
    return dims


@click.command()
@click.argument("model_path", type=click.Path(dir_okay=False))
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, writable=True),
    default=None,
    help="Write the C source to this file instead of stdout",
)
@click.option(
    "--define-dim",
    "-d",
    "dim_values",
    multiple=True,
    callback=parse_dim,
    metavar="NAME:VALUE",
    help="Fix the size of a symbolic input dimension (repeatable)",
)
@click.option(
    "--function-name",
    default="model_forward",
    show_default=True,
    help="Name of the generated C function",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def main(model_path, output, dim_values, function_name, verbose):
    """Compile the ONNX model at MODEL_PATH to a standalone C source file."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)

    try:
        compiler = OnnxToCCompiler(verbose=verbose, function_name=function_name,
                                   dim_values=dim_values)
    except ValueError as e:
        raise click.BadParameter(str(e))

    try:
        source = compiler.compile_file(model_path)
    except CompilationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    # Nothing is written unless compilation succeeded
    if output:
        try:
            with open(output, "w") as f:
                f.write(source)
        except OSError as e:
            click.echo(f"Error: cannot write '{output}': {e}", err=True)
            sys.exit(1)
        if verbose:
            click.echo(f"Wrote {output}", err=True)
    else:
        click.echo(source, nl=False)


if __name__ == "__main__":
    main()

import argparse
import sys
from pathlib import Path

import yaml

from yamlbatch.batch_datatypes import QuoteStyle, YamlLibrary
from yamlbatch.batch_document import to_text
from yamlbatch.batch_runtime import ScriptRunner
from yamlbatch.batch_serialize import deserialize, read_document, write_document


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ybatch",
        description="Run a batch script against a YAML/JSON document.",
    )
    p.add_argument("batch_file", help="the batch script to run")
    p.add_argument("-i", "--input", default=None,
                   help="input document; '-' reads stdin (default: an empty document)")
    p.add_argument("-o", "--output", default="-",
                   help="where to write the final document; '-' is stdout (default)")
    p.add_argument("-v", "--verbose", action="store_true", help="trace every statement on stderr")
    p.add_argument("--showStats", dest="show_stats", action="store_true",
                   help="report how many commands ran and for how long")
    p.add_argument("--yamllibrary", choices=[lib.value for lib in YamlLibrary], default=YamlLibrary.PYYAML.value)
    p.add_argument("-D", "--define", action="append", default=[], metavar="KEY=VALUE",
                   help="set a global variable before the script starts")
    quotes = p.add_mutually_exclusive_group()
    for style in (QuoteStyle.PLAIN, QuoteStyle.SINGLE_QUOTED, QuoteStyle.DOUBLE_QUOTED):
        quotes.add_argument(style.value, dest="quote_style", action="store_const", const=style)
    return p


def read_input(source, library: YamlLibrary):
    if source is None:
        return {}
    if source == "-":
        fmt = "json" if library is YamlLibrary.JSON else "yaml"
        value = deserialize(sys.stdin.read(), fmt=fmt, library=library)
        return {} if value is None else value
    return read_document(source, library=library)


def write_output(document, dest: str, library: YamlLibrary, quote_style: QuoteStyle):
    if dest == "-":
        sys.stdout.write(to_text(document, library=library, quote_style=quote_style))
        return
    write_document(dest, document, library=library, quote_style=quote_style)


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    library = YamlLibrary.from_name(args.yamllibrary)

    if not Path(args.batch_file).is_file():
        print(f"Error: file not found: {args.batch_file}", file=sys.stderr)
        return 1
    try:
        document = read_input(args.input, library)
    except OSError as e:
        print(f"Error: cannot read input {args.input}: {e.strerror or e}", file=sys.stderr)
        return 1
    except (ValueError, yaml.YAMLError) as e:
        print(f"Error: input {args.input} is not valid YAML/JSON: {e}", file=sys.stderr)
        return 1

    runner = ScriptRunner(
        verbose=args.verbose,
        show_stats=args.show_stats,
        quote_style=args.quote_style or QuoteStyle.UNDEFINED,
        library=library,
    )
    for definition in args.define:
        key, _, value = definition.partition("=")
        runner.variables.set_global(key.strip(), value)

    result = runner.handle_file(args.batch_file, document)
    # Print side effects (from print statements, traces and error reports)
    for effect in result.side_effects:
        stream = sys.stderr if effect.get('topics') == ['stderr'] else sys.stdout
        stream.write(str(effect.get('message', '')) + effect.get('end', '\n'))
    sys.stdout.flush()
    if result.status == 'error':
        return 1

    p = runner.processor
    write_output(result.value, args.output, p.library, p.quote_style)
    return 0


def cli():
    raise SystemExit(main())


if __name__ == "__main__":
    cli()

"""
The `yaml` backend family: query and edit the current document by path pattern.

    yaml --read PATH | --list PATH | --delete PATH
    yaml --insert PATH VALUE | --replace PATH VALUE | --table PATH COL1,COL2
         [--delimiter D] [--no-quote|--single-quote|--double-quote]
"""
from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Any, List, Optional

import yaml

from yamlbatch import batch_paths as paths
from yamlbatch.batch_backends import Backend, BackendArgs
from yamlbatch.batch_datatypes import ConfigurationError, QuoteStyle
from yamlbatch.batch_document import from_text


class _ArgumentParser(argparse.ArgumentParser):
    """argparse that raises instead of exiting the process."""

    def error(self, message):
        raise ValueError(message)


@dataclass
class YamlArgs(BackendArgs):
    action: str = ""
    path: str = ""
    value: Optional[str] = None
    delimiter: str = "."


_OPERAND_COUNTS = {"read": 1, "list": 1, "delete": 1, "insert": 2, "replace": 2, "table": 2}


def _build_parser() -> argparse.ArgumentParser:
    p = _ArgumentParser(prog="yaml", add_help=False)
    actions = p.add_mutually_exclusive_group(required=True)
    actions.add_argument("--read", "-r", dest="action", action="store_const", const="read")
    actions.add_argument("--list", "-l", dest="action", action="store_const", const="list")
    actions.add_argument("--delete", "-d", dest="action", action="store_const", const="delete")
    actions.add_argument("--insert", "-n", dest="action", action="store_const", const="insert")
    actions.add_argument("--replace", "-c", dest="action", action="store_const", const="replace")
    actions.add_argument("--table", "-t", dest="action", action="store_const", const="table")
    p.add_argument("--delimiter", default=".")
    quotes = p.add_mutually_exclusive_group()
    for style in (QuoteStyle.PLAIN, QuoteStyle.SINGLE_QUOTED, QuoteStyle.DOUBLE_QUOTED):
        quotes.add_argument(style.value, dest="quote_style", action="store_const", const=style)
    p.add_argument("-v", "--verbose", action="store_true")
    p.add_argument("operands", nargs="*")
    return p


class YamlBackend(Backend):
    keyword = "yaml"

    def parse_args(self, tokens: List[str]) -> YamlArgs:
        ns = _build_parser().parse_args(tokens)
        expected = _OPERAND_COUNTS[ns.action]
        if len(ns.operands) != expected:
            raise ValueError(f"--{ns.action} takes {expected} operand(s), got {len(ns.operands)}: {ns.operands}")
        return YamlArgs(
            command=ns.action,
            action=ns.action,
            path=ns.operands[0],
            value=ns.operands[1] if expected > 1 else None,
            delimiter=ns.delimiter,
            quote_style=ns.quote_style or QuoteStyle.UNDEFINED,
            verbose=ns.verbose,
        )

    def _value(self, text: str) -> Any:
        if text.startswith("@"):
            if self.memory is None:
                raise ConfigurationError(f"no document memory to read {text} from")
            if text[1:] in self.memory:
                return self.memory.load(text[1:])
            value = self.memory.resolve(text, library=self.library)
            if value is None:
                raise ConfigurationError(f"nothing in memory or on disk under {text}")
            return value
        try:
            return from_text(text, library=self.library)
        except (ValueError, yaml.YAMLError):
            # Not parseable as a document; keep the raw text as a scalar
            return text

    def process(self, args: YamlArgs, document: Any) -> Any:
        segments = paths.split_path(args.path, args.delimiter)
        match args.action:
            case "read":
                return paths.read(document, segments)
            case "list":
                return paths.list_paths(document, segments, args.delimiter)
            case "delete":
                return paths.delete(document, segments)
            case "insert":
                return paths.insert(document, segments, self._value(args.value))
            case "replace":
                return paths.replace(document, segments, self._value(args.value))
            case "table":
                columns = [c.strip() for c in args.value.split(",") if c.strip()]
                return paths.table(document, segments, columns)
            case _:
                raise ValueError(f"unknown yaml action {args.action!r}")

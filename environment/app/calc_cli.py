#!/usr/bin/env python3
"""Pipeline calculator: sums or transforms numbers read from stdin.

Sum mode prints a running narrative and ``| => <sum>``; foreach mode prints
one bare value per input item so the output can feed another instance.
"""

from __future__ import annotations

import argparse
import re
import sys
from dataclasses import dataclass
from typing import Iterable, Optional, TextIO

from calc_expr import MAX_INT_BITS, EvalError, Number, evaluate, format_value, parse_number, substitute


EXIT_OK = 0
EXIT_FATAL = 1
EXIT_NO_ARGS = 3
EXIT_MODE_CONFLICT = 11
EXIT_BAD_OPTION = 17

HELP = """\
{prog} [-h] [-q] [-s SEPARATOR] [-r START,END] (-a [-c EXP] | --foreach EXP)

Sum up, or compute over, a set of values provided via stdin. Values are
separated by SEPARATOR; multiple lines may be provided.

  -h|--help                   Show this help message and exit
  -s|--separator SEPARATOR    Use the characters in SEPARATOR as field separators
                              (else assume whitespace)
  -r|--range START,END        The range of values to use, 1-based, START inclusive and
                              END exclusive i.e. [START,END). Either side may be left
                              out but not both: "3," means all values from the 3rd one,
                              ",77" means all values up to but not including the 77th,
                              "11,16" means values 11, 12, 13, 14 and 15.
  -a|--add                    Sum up all the values.
  -c|--compute EXP            An additional computation carried out on the sum, written
                              in terms of s (sum) and c (count of values summed). For
                              example "s / (256*c)". Requires -a|--add.
  --foreach EXP               Evaluate EXP for each value and print each result on its
                              own line. EXP is written in terms of i, the current value.
                              Cannot be combined with -a|--add. Implies -q|--quiet.
  -q|--quiet                  Only print computed results.

Expressions support + - * / // % **, parentheses, the constants pi and e, and
abs round min max floor ceil sqrt exp log log10 sin cos tan.
"""

_RANGE_RE = re.compile(r"\s*(\d*)\s*(?:,\s*(\d*)\s*)?")

_VALUE_OPTIONS = {
    "-s": "--separator",
    "--separator": "--separator",
    "-r": "--range",
    "--range": "--range",
    "-c": "--compute",
    "--compute": "--compute",
    "--foreach": "--foreach",
}


class UsageError(Exception):
    pass


class ModeError(Exception):
    pass


class ParseError(Exception):
    pass


class RangeError(Exception):
    pass


@dataclass(frozen=True)
class Config:
    mode: Optional[str] = None
    separator: Optional[str] = None
    range_start: Optional[int] = None
    range_end: Optional[int] = None
    expression: Optional[str] = None
    quiet: bool = False
    show_help: bool = False
    leftovers: tuple[str, ...] = ()


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def _help_text(prog: str) -> str:
    return HELP.format(prog=prog)


def _parse_range(text: str) -> tuple[Optional[int], Optional[int]]:
    m = _RANGE_RE.fullmatch(text)
    if m is None:
        raise UsageError(f"malformed range: {text!r} (expected START,END)")
    start_s, end_s = m.group(1), m.group(2) or ""
    if not start_s and not end_s:
        raise UsageError(f"range needs at least one of START and END: {text!r}")

    start = int(start_s) if start_s else None
    end = int(end_s) if end_s else None
    if start == 0 or end == 0:
        raise UsageError("range positions are numbered from 1")
    return start, end


def _fold_option_values(args: list[str]) -> list[str]:
    """Attach the word after a value-taking option as ``--opt=value``.

    argparse would read a value such as ``-i`` or ``-s/c`` as another flag;
    getopt-style parsing always takes the next word.
    """
    folded: list[str] = []
    it = iter(args)
    for word in it:
        if word == "--":
            folded.append(word)
            folded.extend(it)
            break
        long_opt = _VALUE_OPTIONS.get(word)
        if long_opt is None:
            folded.append(word)
            continue
        value = next(it, None)
        if value is None:
            folded.append(word)
        else:
            folded.append(f"{long_opt}={value}")
    return folded


def _parse_args(argv: list[str]) -> Config:
    p = _ArgumentParser(prog=argv[0] if argv else "calc-cli", add_help=False)
    p.add_argument("-h", "--help", action="store_true")
    p.add_argument("-s", "--separator")
    p.add_argument("-r", "--range")
    p.add_argument("-a", "--add", action="store_true")
    p.add_argument("-c", "--compute")
    p.add_argument("--foreach")
    p.add_argument("-q", "--quiet", action="store_true")
    args, extras = p.parse_known_args(_fold_option_values(argv[1:]))

    if args.help:
        return Config(show_help=True)

    unknown = [x for x in extras if x.startswith("-") and x != "-"]
    if unknown:
        raise UsageError(f"unrecognized arguments: {' '.join(unknown)}")

    if args.add and args.foreach is not None:
        raise ModeError("-a|--add and --foreach are mutually exclusive!")
    if args.compute is not None and not args.add:
        raise ModeError("-c|--compute can only be used in summation mode (i.e. with -a|--add)")

    if args.separator is not None and args.separator == "":
        raise UsageError("separator must not be empty")

    start = end = None
    if args.range is not None:
        start, end = _parse_range(args.range)

    if args.add:
        mode, expression = "sum", args.compute
    elif args.foreach is not None:
        mode, expression = "foreach", args.foreach
    else:
        mode, expression = None, None

    return Config(
        mode=mode,
        separator=args.separator,
        range_start=start,
        range_end=end,
        expression=expression,
        # foreach output must stay bare so it can be piped into another instance
        quiet=args.quiet or mode == "foreach",
        leftovers=tuple(extras),
    )


def _split(line: str, separator: Optional[str]) -> list[str]:
    if separator is None:
        return line.split()
    return re.findall(f"[^{re.escape(separator)}]+", line.rstrip("\r\n"))


def _read_items(stream: Iterable[str], separator: Optional[str]) -> list[str]:
    items: list[str] = []
    for line in stream:
        items.extend(_split(line, separator))
    return items


def _select_range(
    items: list[str],
    start: Optional[int],
    end: Optional[int],
    *,
    quiet: bool,
) -> list[str]:
    limit = len(items) + 1

    if end is not None and end > limit:
        if not quiet:
            print(
                f"[ ] range end ({end}) past the end of the allowable range ({limit}). "
                f"Reducing to {limit}"
            )
        end = limit

    if start is not None and start > len(items):
        raise RangeError(
            f"start range index ({start}) > the count of items provided ({len(items)})!"
        )

    if start is None and end is None:
        return list(items)

    lo = (start if start is not None else 1) - 1
    hi = (end if end is not None else limit) - 1
    return items[lo:hi]


def _sum_items(items: list[str], *, quiet: bool) -> Number:
    if not quiet:
        print(f"[ ] Will add up {len(items)} items.")
        print("0")

    total: Number = 0
    for n, token in enumerate(items, start=1):
        try:
            value = parse_number(token)
        except ValueError:
            raise ParseError(f"invalid numeric token {token!r} (item {n})") from None
        if not quiet:
            print(f"+ {token}")
        total += value
        if isinstance(total, int) and total.bit_length() > MAX_INT_BITS:
            raise ParseError(f"sum too large to print at item {n}")

    print(f"| => {format_value(total)}")
    return total


def _run_sum(config: Config, items: list[str]) -> None:
    total = _sum_items(items, quiet=config.quiet)
    if config.expression is None:
        return

    variables = {"s": total, "c": len(items)}
    if not config.quiet:
        print(
            f"Converting expression '{config.expression}' => "
            f"'{substitute(config.expression, variables)}'"
        )
    result = evaluate(config.expression, variables)
    print(f"|c=> {format_value(result)}")


def _item_value(token: str):
    try:
        return parse_number(token)
    except ValueError:
        return token


def _run_foreach(config: Config, items: list[str]) -> None:
    for token in items:
        result = evaluate(config.expression, {"i": _item_value(token)})
        print(format_value(result))


def run(config: Config, stdin: TextIO) -> None:
    if config.leftovers:
        print(
            "Superfluous/misunderstood cl args: " + " ".join(config.leftovers),
            file=sys.stderr,
        )

    items = _read_items(stdin, config.separator)
    items = _select_range(items, config.range_start, config.range_end, quiet=config.quiet)

    if config.mode == "sum":
        _run_sum(config, items)
    elif config.mode == "foreach":
        _run_foreach(config, items)


def main(argv: list[str]) -> int:
    prog = argv[0] if argv else "calc-cli"
    if len(argv) < 2:
        print("missing arguments", file=sys.stderr)
        print(_help_text(prog), file=sys.stderr, end="")
        return EXIT_NO_ARGS

    try:
        config = _parse_args(argv)
    except UsageError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_BAD_OPTION
    except ModeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_MODE_CONFLICT

    if config.show_help:
        print(_help_text(prog), end="")
        return EXIT_OK

    try:
        run(config, sys.stdin)
    except ParseError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL
    except RangeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL
    except EvalError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FATAL

    return EXIT_OK


def entry_point() -> None:
    raise SystemExit(main(sys.argv))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))

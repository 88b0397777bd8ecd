"""Package entry point for ``python -m lqs_pipeline``."""
from __future__ import annotations

import sys

from . import cli


def main(argv: list[str] | None = None) -> int:
    """Invoke the pipeline CLI, printing usage when no command is given."""

    if argv is None:
        argv = sys.argv[1:]

    if not argv:
        parser = cli.build_parser(prog="python -m lqs_pipeline")
        parser.print_help()
        return 2

    return cli.main(argv)


if __name__ == "__main__":  # pragma: no cover - module entry point
    sys.exit(main())

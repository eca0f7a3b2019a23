"""Entry point for ``python -m fwpatcher`` and the ``fwpatcher`` console script."""

from typing import Optional, Sequence


def main(argv: Optional[Sequence[str]] = None) -> int:
    import start_fwpatcher

    return start_fwpatcher.main(argv)


if __name__ == "__main__":
    raise SystemExit(main())

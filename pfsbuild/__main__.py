"""Module execution entrypoint for ``python -m pfsbuild``."""

from pfsbuild.cli import main

if __name__ == "__main__":
    raise SystemExit(main())

"""Module entrypoint for ``python -m byteframes``."""

from __future__ import annotations

from byteframes.main import cli_entrypoint

if __name__ == "__main__":
    raise SystemExit(cli_entrypoint())

from __future__ import annotations

import sys

from storefront_checkout.adapters.inbound.cli import run_cli
from storefront_checkout.bootstrap import build_checkout_usecase
from storefront_checkout.config import get_settings
from storefront_checkout.logging_config import configure_logging


def main(argv: list[str] | None = None) -> int:
    argv = argv or sys.argv[1:]
    if not argv:
        print("usage: python -m storefront_checkout.main '<json>'")
        return 2

    configure_logging(get_settings().log_level)
    svc = build_checkout_usecase()
    return run_cli(svc, argv[0])


if __name__ == "__main__":
    raise SystemExit(main())

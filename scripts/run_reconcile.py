from __future__ import annotations

import argparse

from services.observability import configure_logging
from services.reconcile import reconcile_user_payments


def main() -> None:
    parser = argparse.ArgumentParser(description="Re-derive OWED/ON_HOLD for the given users once.")
    parser.add_argument("user_ids", nargs="+", help="winner ids to reconcile")
    args = parser.parse_args()

    configure_logging()

    summary = reconcile_user_payments(*args.user_ids)

    print(
        "counts:",
        f"users={summary['users']}",
        f"eligible={len(summary['eligible'])}",
        f"ineligible={len(summary['ineligible'])}",
        f"set_owed={summary['set_owed']}",
        f"set_on_hold={summary['set_on_hold']}",
    )


if __name__ == "__main__":
    main()

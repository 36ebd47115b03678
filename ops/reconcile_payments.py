from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime


def _bootstrap_app():
    from teloven import create_app

    app = create_app()
    app.app_context().push()
    return app


def main():
    parser = argparse.ArgumentParser(description="Replay recorded payment webhooks whose order never left CREATED.")
    parser.add_argument("--since", default="", help="ISO timestamp; only events recorded after it.")
    parser.add_argument("--limit", type=int, default=500, help="Maximum ledger rows to scan.")
    args = parser.parse_args()

    since = None
    if args.since:
        since = datetime.fromisoformat(args.since)

    app = _bootstrap_app()
    from teloven.services.reconciliation_service import reconcile_recorded_events

    summary = reconcile_recorded_events(app.extensions["lifecycle_engine"], since=since, limit=args.limit)
    print(json.dumps(summary, indent=2))
    errors = [item for item in summary.get("items", []) if item.get("outcome") == "gateway_error"]
    return 0 if not errors else 2


if __name__ == "__main__":
    os.environ.setdefault("FLASK_APP", "main.py")
    sys.exit(main())

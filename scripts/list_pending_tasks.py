#!/usr/bin/env python3
"""
Lists pending backend tasks in the Search API database, grouped by server.

- Uses the DATABASE_URL from search_api/config.py.
- Pass --execute to run a reconciliation pass first.
- Can be run from anywhere in the repo.
"""

import sys
from pathlib import Path

# --- Ensure project root (where search_api/ lives) is on sys.path ---
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from search_api.db import session_scope  # noqa: E402
from search_api.services.reconcile import Reconciler  # noqa: E402
from search_api.services.server import ServerManager  # noqa: E402

with session_scope() as session:
    servers = ServerManager(session)

    if "--execute" in sys.argv[1:]:
        report = Reconciler(servers).execute_pending()
        print(
            f"\nReconciliation: executed={report.executed} stale={report.stale} "
            f"failed={report.failed} remaining={report.remaining}"
        )

    server_ids = servers.tasks.server_ids()
    if not server_ids:
        print("\nNo pending tasks.")
    for server_id in server_ids:
        server = servers.load(server_id)
        state = "missing" if server is None else ("enabled" if server.status else "disabled")
        print(f"\n• {server_id} ({state})")
        for task in servers.tasks.dequeue_all(server_id):
            print(f"    #{task.id} {task.type:<17} index={task.index_id or '-'} created={task.created:%Y-%m-%d %H:%M:%S}")
    print("\nDone.")

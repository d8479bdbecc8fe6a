"""
qtrack.commands.serve - Run the REST API server.
"""

from __future__ import annotations

import argparse

from loguru import logger


def run(args: argparse.Namespace) -> int:
    """Start the Flask server, optionally preloaded from a snapshot file."""
    from qtrack.server.app import create_app
    from qtrack.store.datastore import InMemoryDataStore, load_snapshot_file

    config = args.loaded_config
    server = config["server"]
    host = args.host or server["host"]
    port = args.port or int(server["port"])

    if args.snapshot:
        store = load_snapshot_file(args.snapshot)
        logger.info("Loaded snapshot {}", args.snapshot)
    else:
        store = InMemoryDataStore()

    print(
        f"""
======================================
  qtrack API Server
======================================

Snapshot:   {args.snapshot or "(empty store)"}
Server:     http://{host}:{port}
Webhook:    POST http://{host}:{port}/api/webhook/test-case

Press Ctrl+C to stop
"""
    )

    app = create_app(store, config)
    try:
        app.run(host=host, port=port, debug=bool(server["debug"]))
    except KeyboardInterrupt:
        print("\nServer stopped.")

    return 0

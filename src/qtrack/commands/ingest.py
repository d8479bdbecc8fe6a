"""
qtrack.commands.ingest - Apply a webhook payload to a snapshot file.

Runs the payload through the same processor the HTTP endpoint uses, so a
CI job can reconcile results offline and commit the updated snapshot.
"""

from __future__ import annotations

import argparse
import json

from qtrack.exceptions import ValidationError


def run(args: argparse.Namespace) -> int:
    from qtrack.pipeline import build_pipeline
    from qtrack.store.datastore import load_snapshot_file, write_snapshot_file

    store = load_snapshot_file(args.snapshot)
    pipeline = build_pipeline(store, args.loaded_config)

    try:
        payload = json.loads(args.payload.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"Payload is not valid JSON: {e}", error_code="VALIDATION_004"
        ) from e

    response = pipeline.processor.receive(payload)
    print(json.dumps({"status": response.status, "body": response.body}, indent=2))

    if not response.ok:
        return 1

    if args.write:
        write_snapshot_file(store, args.snapshot)
        print(f"Updated {args.snapshot}")
    return 0

"""
qtrack.commands.gates - Re-evaluate release quality gates.
"""

from __future__ import annotations

import argparse
import json


def run(args: argparse.Namespace) -> int:
    from qtrack.pipeline import build_pipeline
    from qtrack.store.datastore import load_snapshot_file, write_snapshot_file

    store = load_snapshot_file(args.snapshot)
    pipeline = build_pipeline(store, args.loaded_config)

    versions = pipeline.refresh_gates()
    if versions is None:
        return 1

    if args.json:
        print(json.dumps([v.to_dict() for v in versions], indent=2))
    else:
        for version in versions:
            print(f"{version.name or version.id}:")
            if not version.quality_gates:
                print("  (no quality gates)")
            for gate in version.quality_gates:
                mark = "PASS" if gate.status == "passed" else "FAIL"
                print(f"  [{mark}] {gate.id:<26} actual {gate.actual:>5}  target {gate.target}")

    if args.write:
        write_snapshot_file(store, args.snapshot)
    return 0 if all(g.status == "passed" for v in versions for g in v.quality_gates) else 3

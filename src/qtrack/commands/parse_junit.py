"""
qtrack.commands.parse_junit - Resolve one test case in a JUnit XML file.
"""

from __future__ import annotations

import argparse
import json
import sys

from qtrack.parsers.junit_xml import JUnitXMLParser


def run(args: argparse.Namespace) -> int:
    """Print the extracted result for ``--test-id``.

    Returns 2 when the document has no matching test case.
    """
    webhook = args.loaded_config["webhook"]
    parser = JUnitXMLParser(
        max_bytes=int(webhook["max_xml_bytes"]), framework=str(webhook["framework"])
    )

    content = args.file.read_text(encoding="utf-8")
    tests = parser.parse(content)
    match = parser.resolve(tests, args.test_id)
    if not match.found:
        print(f"No test matching {args.test_id} among {len(tests)} tests", file=sys.stderr)
        return 2

    result = parser.transform(match, args.test_id)

    if args.json:
        data = {
            "match": result.match.value,
            "status": result.status,
            "duration": result.duration,
            "classname": result.classname,
            "method": result.method,
            "file": result.file,
            "framework": result.framework,
            "logs": result.logs,
            "failure": result.failure.to_dict() if result.failure else None,
        }
        print(json.dumps(data, indent=2))
        return 0

    print(f"{args.test_id}: {result.status} ({result.match.value} match on {result.method})")
    print(f"  duration: {result.duration:g} ms")
    print(f"  file:     {result.file}")
    if result.failure is not None:
        print(f"  failure:  {result.failure.type} [{result.failure.category}]")
        if result.failure.message:
            print(f"            {result.failure.message}")
    return 0

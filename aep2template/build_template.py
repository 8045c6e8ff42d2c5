#!/usr/bin/env python3

"""
Build a Template JSON document from an After Effects project.

    python -m aep2template.build_template promo.aep -o promo.template.json \
        --assets ./footage --set TITLE="Summer Sale"
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Dict, List, Optional

from aep2template import merge_fields
from aep2template.assets import AssetCache
from aep2template.config import load_config
from aep2template.errors import AEPError
from aep2template.log_utils import configure_logging
from aep2template.template import convert_project, template_to_json

logger = logging.getLogger(__name__)


def parse_assignments(pairs: List[str]) -> Dict[str, str]:
    """KEY=VALUE pairs from --set; the value may itself contain '='."""
    values: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        values[key.strip()] = value
    return values


def _emit(text: str, out: str) -> None:
    if out == "-" or out.lower() == "stdout":
        print(text)
    else:
        with open(out, "w", encoding="utf-8") as f:
            f.write(text)
        logger.info(f"Output written to {out}")


def _cli(argv: Optional[List[str]] = None) -> None:
    """CLI harness for building Template JSON from an .aep/.aet project."""
    parser = argparse.ArgumentParser(
        description="Build Template JSON from an After Effects project."
    )
    parser.add_argument("project", help="Path to .aep/.aet project file")
    parser.add_argument("-o", "--out", default="-", help="Output JSON path (default: stdout)")
    parser.add_argument("--assets", help="Directory of media assets to catalogue")
    parser.add_argument("--name", help="Template name (default: derived from the file name)")
    parser.add_argument("--description", help="Template description")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--set", dest="values", action="append", default=[], metavar="KEY=VALUE",
                        help="Merge field value to apply (repeatable)")
    parser.add_argument("--report", help="Write the processing report JSON to this path")
    parser.add_argument("--analysis-only", action="store_true",
                        help="Emit the normalised project analysis instead of a Template")
    parser.add_argument("--no-probe", action="store_true", help="Skip media metadata probing")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--json-logs", action="store_true", help="Log one JSON object per line")
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose, json_logs=args.json_logs)

    try:
        values = parse_assignments(args.values)
        config = load_config(args.config)
        result = convert_project(
            args.project,
            assets_dir=args.assets,
            name=args.name,
            description=args.description,
            config=config,
            cache=AssetCache(),
            probe_assets=not args.no_probe,
        )

        if args.analysis_only:
            _emit(json.dumps(result.analysis.to_dict(), indent=2, ensure_ascii=False), args.out)
            return

        template = result.template
        if values:
            for issue in merge_fields.check_values(template.merge_fields, values):
                logger.warning(issue.message)
            template, counts = merge_fields.apply_with_report(template, values)
            result.report["mergeReplacements"] = counts

        _emit(template_to_json(template), args.out)
        if args.report:
            with open(args.report, "w", encoding="utf-8") as f:
                json.dump(result.report, f, indent=2)
            logger.info(f"Processing report written to {args.report}")

    except (AEPError, ValueError, OSError) as e:
        logger.error(f"Failed: {e}")
        raise SystemExit(1) from e


if __name__ == "__main__":
    _cli(sys.argv[1:])

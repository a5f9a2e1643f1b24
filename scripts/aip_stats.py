#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
import pathlib
import sys
from dataclasses import asdict
from typing import Any

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from aip_report.config import SearchIndexConfig
from aip_report.errors import ApiError
from aip_report.service import AipAnalyticsService


def main() -> int:
    parser = argparse.ArgumentParser(description="List AIPs or compute per-AIP stats from the search index.")
    parser.add_argument("--aip-uuid", default="", help="scan one AIP and print its stats")
    parser.add_argument("--limit", type=int, default=0, help="list size, or page size with --aip-uuid")
    parser.add_argument("--cursor", default="", help="resume a listing from next_cursor")
    parser.add_argument("--index", default="", help="override APP_ES_AIP_INDEX")
    parser.add_argument("--verbose", action="store_true", help="log scan progress to stderr")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING, stream=sys.stderr)
    service = AipAnalyticsService(config=SearchIndexConfig.from_env())

    report: dict[str, Any]
    try:
        if args.aip_uuid:
            stats = service.aip_stats(args.aip_uuid, page_size=args.limit, index=args.index)
            report = {"success": True, "data": stats.model_dump(mode="json")}
        else:
            result = service.list_aips(limit=args.limit, cursor=args.cursor, index=args.index)
            report = {
                "success": True,
                "data": {
                    "items": [asdict(item) for item in result.items],
                    "next_cursor": result.next_cursor,
                },
            }
    except ApiError as exc:
        print(json.dumps({"success": False, "error": {"code": exc.code, "message": exc.message}}, ensure_ascii=False))
        return 2
    finally:
        service.close()
    print(json.dumps(report, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

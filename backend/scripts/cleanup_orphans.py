"""Report (or delete) stored files that no pedido, canvas or mockup references.

Usage:
    python scripts/cleanup_orphans.py
    python scripts/cleanup_orphans.py --delete
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sqlmodel import Session  # noqa: E402

from painel.database import engine  # noqa: E402
from painel.services import StorageMaintenanceService  # noqa: E402


def main() -> int:
    parser = argparse.ArgumentParser(description="Find orphan files in the storage bucket.")
    parser.add_argument("--delete", action="store_true", help="Delete the orphans instead of only counting them")
    args = parser.parse_args()

    with Session(engine, expire_on_commit=False) as session:
        result = StorageMaintenanceService(session).run("delete" if args.delete else "count")
    print(json.dumps(result, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""CLI script to import pedidos from XLSX/CSV/JSON spreadsheets into the backend DB.
Usage: python scripts/import_pedidos.py PATH [PATH ...] [--dry-run]
"""
import sys
import argparse
import pathlib
from typing import List
# Ensure `backend/` is on sys.path so `painel` package imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from painel.database import create_db_and_tables, engine
from painel import services

SUPPORTED = ('.xlsx', '.csv', '.json')


def collect_files(paths: List[str]) -> List[pathlib.Path]:
    """Expand directories into the spreadsheets they contain."""
    files = []
    for raw in paths:
        p = pathlib.Path(raw)
        if p.is_dir():
            files.extend(sorted(f for f in p.iterdir() if f.suffix.lower() in SUPPORTED))
        elif p.is_file():
            files.append(p)
        else:
            print(f'Not found: {p}')
    return files


def main(paths: List[str], dry_run: bool = False) -> int:
    files = collect_files(paths)
    if not files:
        print('No files found to import')
        return 1
    create_db_and_tables()
    total_created = 0
    total_skipped = 0
    with Session(engine, expire_on_commit=False) as session:
        svc = services.PedidoService(session)
        for f in files:
            try:
                result = svc.import_file(f.read_bytes(), f.name, dry_run=dry_run)
            except ValueError as e:
                print(f'Error importing {f}: {e}')
                continue
            total_created += result['created']
            total_skipped += result['skipped']
            if dry_run:
                print(f'{f}: {len(result["preview"])} valid rows, skipped {result["skipped"]}')
            else:
                print(f'Imported {f}: created {result["created"]}, skipped {result["skipped"]}')
    print(f'Total created pedidos: {total_created}, skipped {total_skipped}')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('paths', nargs='+', help='Spreadsheet files or folders')
    parser.add_argument('--dry-run', action='store_true', help='Parse and report without writing')
    args = parser.parse_args()
    sys.exit(main(args.paths, dry_run=args.dry_run))

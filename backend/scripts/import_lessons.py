"""CLI script to import lesson packs from a local content folder into the backend DB.
Usage: python scripts/import_lessons.py [--root PATH] [--category NAME] [--dry-run]
"""
import argparse
import pathlib
import sys
from typing import Optional

# Ensure `backend/` is on sys.path so `microlearn` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session

from microlearn import services
from microlearn.database import create_db_and_tables, engine
from microlearn.utils.content_loader import find_lesson_files


def main(root: pathlib.Path, category: Optional[str] = None, dry_run: bool = False) -> int:
    """Scan `root` for lesson packs and import every file found.

    Results are printed to stdout for a quick CLI feedback loop. Returns
    the number of lessons created.
    """
    if not root.exists():
        print(f'Content folder not found at {root}')
        return 0
    files = find_lesson_files(root, category=category)
    if not files:
        print('No files found to import')
        return 0
    create_db_and_tables()
    total_created = 0
    total_skipped = 0
    with Session(engine) as session:
        svc = services.ImportService(session)
        for f in files:
            try:
                result = svc.import_file(f.read_bytes(), f.name, dry_run=dry_run)
            except ValueError as e:
                print(f'Error importing {f}: {e}')
                continue
            total_created += result['created']
            total_skipped += result['skipped']
            print(f"Imported {f}: created {result['created']}, skipped {result['skipped']}, errors {len(result['errors'])}")
            for err in result['errors']:
                print(f"  item {err['index']} ({err.get('title') or '?'}): {err['error']}")
    print(f'Total created lessons: {total_created}, skipped {total_skipped}')
    return total_created


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--root', type=pathlib.Path, default=ROOT.parent / 'content', help='Folder holding lesson packs')
    parser.add_argument('--category', help='Import only from this category subfolder')
    parser.add_argument('--dry-run', action='store_true', help='Validate without writing')
    args = parser.parse_args()
    main(args.root, category=args.category, dry_run=args.dry_run)

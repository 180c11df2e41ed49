#!/usr/bin/env python3
"""
Run the World Director admin API, or manage snapshots from the command line.
"""

import argparse
import sys
from pathlib import Path

# Add repo root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import uvicorn

from worlddirector.core.config import ensure_data_directories, validate_director_config
from worlddirector.core.snapshots import RestoreError, SnapshotError, SnapshotManager


def main():
    parser = argparse.ArgumentParser(
        description="World Director admin server and snapshot utility",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # Serve the admin API on 127.0.0.1:8000
  %(prog)s --host 0.0.0.0 --port 9000   # Serve on another interface
  %(prog)s --snapshot before_patch      # Create a labelled snapshot and exit
  %(prog)s --list-snapshots             # List snapshots, newest first
  %(prog)s --restore snapshot_20240101_120000_abcd1234

Environment variables:
- DIRECTOR_DATA_DIR=./data
- SNAPSHOT_DIR=./snapshots
- DIRECTOR_TICK_SEC=10
- ENCRYPTION_KEY=... (guardrail secrets and encrypted snapshots)
        """
    )

    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    parser.add_argument("--snapshot", metavar="LABEL", help="Create a snapshot and exit")
    parser.add_argument("--list-snapshots", action="store_true", help="List snapshots and exit")
    parser.add_argument("--restore", metavar="SNAPSHOT_ID", help="Restore a snapshot and exit")

    args = parser.parse_args()

    ensure_data_directories()
    for issue in validate_director_config():
        print(f"WARNING: {issue}")

    manager = SnapshotManager()
    try:
        if args.snapshot:
            manifest = manager.create_snapshot(args.snapshot)
            print(f"Snapshot created: {manifest.snapshot_id}")
            print(f"Files: {manifest.file_count}")
            print(f"Size: {manifest.total_size:,} bytes")
            print(f"Encrypted: {manifest.encrypted}")
            return 0

        if args.list_snapshots:
            snapshots = manager.list_snapshots()
            if not snapshots:
                print("No snapshots found")
            for manifest in snapshots:
                print(f"{manifest.snapshot_id}  {manifest.created_at.isoformat()}  {manifest.label}  "
                      f"{manifest.file_count} files")
            return 0

        if args.restore:
            manifest = manager.restore_snapshot(args.restore)
            print(f"Restored snapshot {manifest.snapshot_id} ({manifest.file_count} files)")
            return 0
    except (SnapshotError, RestoreError) as e:
        print(f"ERROR: {e}")
        return 1

    uvicorn.run("worlddirector.api.main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


if __name__ == "__main__":
    sys.exit(main())

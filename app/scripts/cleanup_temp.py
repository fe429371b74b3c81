"""
Delete conversion temp files older than TEMP_MAX_AGE_MINUTES (default 5).
Meant for cron, or a manual run after a crash left files locked.

Usage:
  python -m app.scripts.cleanup_temp
  python -m app.scripts.cleanup_temp --dir tmp --max-age 10
"""

import argparse
import asyncio
from pathlib import Path
from typing import Optional

from app.core.logging_config import setup_logging
from app.documents.converter import sweep_stale_temp_files


async def run(tmp_dir: Optional[str] = None, max_age: Optional[float] = None) -> int:
    return await sweep_stale_temp_files(Path(tmp_dir) if tmp_dir else None, max_age)


def main() -> None:
    parser = argparse.ArgumentParser(description="Remove stale conversion temp files.")
    parser.add_argument("--dir", dest="tmp_dir", default=None, help="Temp directory (default: TMP_DIR)")
    parser.add_argument("--max-age", type=float, default=None, help="Age in minutes (default: TEMP_MAX_AGE_MINUTES)")
    args = parser.parse_args()

    setup_logging()
    deleted = asyncio.run(run(args.tmp_dir, args.max_age))
    print(f"Deleted {deleted} stale temp file(s)")


if __name__ == "__main__":
    main()

"""``bundle-read``: query the metadata of a produced bundle."""

from __future__ import annotations

import argparse
import sys
import zipfile
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from bundle_gen.bundle.metadata import read_bundle_metadata


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="bundle-read", description="Query bundle metadata.")
    parser.add_argument("bundle", metavar="BUNDLE", help="The bundle file to query.")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("-f", "--field", help="The field to output, one value per line for lists.")
    group.add_argument("-a", "--all", action="store_true", help="Output every field.")
    args = parser.parse_args(argv)

    try:
        metadata = read_bundle_metadata(Path(args.bundle))
    except (OSError, KeyError, zipfile.BadZipFile, ValueError, ValidationError) as exc:
        print(f"{parser.prog}: {args.bundle}: {exc}", file=sys.stderr)
        return 2

    fields = metadata.fields()
    if args.all:
        for name in sorted(fields):
            print(f"{name}:")
            for value in fields[name]:
                print(f"  {value}")
    elif args.field:
        values = fields.get(args.field)
        if values is None:
            return 1
        for value in values:
            print(value)
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

"""Stamp the application version file based on a Git tag or ref name."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.version import normalize_version  # noqa: E402

DEFAULT_VERSION_FILE = PROJECT_ROOT / "app" / "VERSION"


def stamp_version(ref_name: str, output: Path) -> Path:
    """Write the normalized version derived from *ref_name* to *output*."""

    normalized = normalize_version(ref_name)
    if not normalized:
        raise ValueError(f"Ref name {ref_name!r} does not contain a version")
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(f"{normalized}\n", encoding="utf-8")
    return output


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "ref_name",
        help="Git ref name to stamp (e.g. 'v1.2.3').",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Path to the VERSION file that is read into the start-up log banner.",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    output = args.output if args.output is not None else DEFAULT_VERSION_FILE
    try:
        stamp_version(args.ref_name, output)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""Bump the deskvfs version in pyproject.toml and src/deskvfs/__init__.py.

Usage:
    python scripts/bump_version.py patch          # 0.1.0 -> 0.1.1
    python scripts/bump_version.py minor          # 0.1.1 -> 0.2.0
    python scripts/bump_version.py major          # 0.2.0 -> 1.0.0
    python scripts/bump_version.py --set 1.2.3    # explicit
    python scripts/bump_version.py minor --dry-run
"""

from __future__ import annotations

import argparse
import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
TARGETS = {
    ROOT / "pyproject.toml": re.compile(r'^(version\s*=\s*")(\d+\.\d+\.\d+)(")', re.MULTILINE),
    ROOT / "src" / "deskvfs" / "__init__.py": re.compile(
        r'^(__version__\s*=\s*")(\d+\.\d+\.\d+)(")', re.MULTILINE
    ),
}
SEMVER = re.compile(r"^\d+\.\d+\.\d+$")


def current_versions() -> dict[Path, str]:
    found: dict[Path, str] = {}
    for path, pattern in TARGETS.items():
        match = pattern.search(path.read_text())
        if match is None:
            sys.exit(f"error: no version string in {path.relative_to(ROOT)}")
        found[path] = match.group(2)
    return found


def next_version(version: str, part: str) -> str:
    major, minor, patch = (int(p) for p in version.split("."))
    if part == "major":
        return f"{major + 1}.0.0"
    if part == "minor":
        return f"{major}.{minor + 1}.0"
    return f"{major}.{minor}.{patch + 1}"


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("part", nargs="?", choices=("major", "minor", "patch"))
    parser.add_argument("--set", dest="explicit", metavar="X.Y.Z")
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    if (args.part is None) == (args.explicit is None):
        parser.error("give exactly one of PART or --set")

    versions = current_versions()
    if len(set(versions.values())) != 1:
        listing = ", ".join(f"{p.relative_to(ROOT)}={v}" for p, v in versions.items())
        sys.exit(f"error: version strings disagree: {listing}")
    old = next(iter(versions.values()))

    new = args.explicit or next_version(old, args.part)
    if not SEMVER.match(new):
        sys.exit(f"error: not a X.Y.Z version: {new}")

    if not args.dry_run:
        for path, pattern in TARGETS.items():
            path.write_text(pattern.sub(rf"\g<1>{new}\3", path.read_text(), count=1))

    print(f"{old} -> {new}{' (dry run)' if args.dry_run else ''}")


if __name__ == "__main__":
    main()

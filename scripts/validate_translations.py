#!/usr/bin/env python3
"""Check the translation catalogues for missing keys and placeholder drift."""

from __future__ import annotations

import argparse
import json
import re
import sys
from pathlib import Path

import yaml

REPO_ROOT = Path(__file__).resolve().parents[1]
TRANSLATIONS_DIR = REPO_ROOT / "src" / "fintrack" / "translations"
MANIFEST_PATH = REPO_ROOT / "src" / "fintrack" / "backend" / "config" / "data" / "manifest.yaml"

PLACEHOLDER_PATTERN = re.compile(r"{\s*([a-zA-Z0-9_]+)\s*}")


class CatalogueError(Exception):
    """Raised when a catalogue cannot be read at all."""


def _load_catalogues() -> dict[str, dict[str, str]]:
    catalogues: dict[str, dict[str, str]] = {}
    for path in sorted(TRANSLATIONS_DIR.glob("*.json")):
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        messages = payload.get("messages") if isinstance(payload, dict) else None
        if not isinstance(messages, dict):
            raise CatalogueError(f"{path.name} must define a 'messages' mapping")
        catalogues[path.stem] = {str(key): str(value) for key, value in messages.items()}

    if not catalogues:
        raise CatalogueError(f"No translation catalogues found in {TRANSLATIONS_DIR}")
    return catalogues


def _missing_keys(catalogues: dict[str, dict[str, str]], base_locale: str) -> list[str]:
    expected = set(catalogues[base_locale])
    issues: list[str] = []
    for locale, messages in sorted(catalogues.items()):
        missing = expected - set(messages)
        extra = set(messages) - expected
        if missing:
            issues.append(f"Locale '{locale}' missing keys: {', '.join(sorted(missing))}")
        if extra:
            issues.append(f"Locale '{locale}' has unknown keys: {', '.join(sorted(extra))}")
    return issues


def _placeholder_drift(catalogues: dict[str, dict[str, str]], base_locale: str) -> list[str]:
    issues: list[str] = []
    for key, template in sorted(catalogues[base_locale].items()):
        expected = set(PLACEHOLDER_PATTERN.findall(template))
        for locale, messages in sorted(catalogues.items()):
            if key not in messages:
                continue
            found = set(PLACEHOLDER_PATTERN.findall(messages[key]))
            if found != expected:
                issues.append(
                    f"{locale}:{key} placeholders {sorted(found)} differ from {sorted(expected)}"
                )
    return issues


def _region_labels(catalogues: dict[str, dict[str, str]], base_locale: str) -> list[str]:
    with MANIFEST_PATH.open("r", encoding="utf-8") as handle:
        manifest = yaml.safe_load(handle) or {}

    issues: list[str] = []
    for entry in manifest.get("regions", []):
        label_key = entry.get("label_key") or f"region.{entry.get('id')}"
        if label_key not in catalogues[base_locale]:
            issues.append(f"Region '{entry.get('id')}' label '{label_key}' is not translated")
    return issues


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--base-locale", default="en")
    args = parser.parse_args(argv)

    try:
        catalogues = _load_catalogues()
    except CatalogueError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    if args.base_locale not in catalogues:
        print(f"error: base locale '{args.base_locale}' has no catalogue", file=sys.stderr)
        return 1

    issues = [
        *_missing_keys(catalogues, args.base_locale),
        *_placeholder_drift(catalogues, args.base_locale),
        *_region_labels(catalogues, args.base_locale),
    ]
    for issue in issues:
        print(f"  - {issue}")
    print(f"{len(catalogues)} catalogue(s) checked, {len(issues)} issue(s)")
    return 1 if issues else 0


if __name__ == "__main__":
    raise SystemExit(main())

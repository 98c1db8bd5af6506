#!/usr/bin/env python3
"""
Command-line interface for Leafpress.
"""

import argparse
import os
import shutil
import sys
from typing import List, Optional

from .core import Builder
from .errors import BuildError


def clean_output(target: str) -> int:
    """Remove everything inside ``target``."""
    if not os.path.isdir(target):
        print(f"Nothing to clean: {target} does not exist")
        return 0
    for item in os.listdir(target):
        item_path = os.path.join(target, item)
        if os.path.isdir(item_path) and not os.path.islink(item_path):
            shutil.rmtree(item_path)
        else:
            os.remove(item_path)
    print(f"Cleaned {target}/")
    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='leafpress',
        description='Leafpress - static site builder',
    )
    subparsers = parser.add_subparsers(dest='command')

    build_parser = subparsers.add_parser('build', help='Build the site')
    build_parser.add_argument('--project-dir', default=None,
                              help='Project directory containing config.yml (default: current directory)')
    build_parser.add_argument('--output', default=None, help='Output directory (default: public)')
    build_parser.add_argument('--url', default=None, help='Site base URL')
    build_parser.add_argument('--theme', default=None, help='Default theme name')
    build_parser.add_argument('-q', '--quiet', action='store_true', help='Reduce console output')

    clean_parser = subparsers.add_parser('clean', help='Empty the output directory')
    clean_parser.add_argument('target', nargs='?', default='public', help='Directory to clean (default: public)')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command == 'clean':
        return clean_output(args.target)

    if args.command is None:
        args = parser.parse_args(['build'] + list(argv or []))

    try:
        Builder(
            args.project_dir,
            quiet=args.quiet,
            output=args.output,
            url=args.url,
            theme=args.theme,
        ).build()
    except BuildError as e:
        print(f"Build failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())

#!/usr/bin/env python3
"""
Entry point for running the Docs MD Crawler control API.

Usage:
    python -m docs_md_crawler.web.run --host 127.0.0.1 --port 5000
"""

import argparse

from .app import run_app


def main():
    """Parse arguments and run the web application."""
    parser = argparse.ArgumentParser(
        description='Run the Docs MD Crawler control API'
    )
    parser.add_argument(
        '--host',
        default='127.0.0.1',
        help='Host to bind to (default: 127.0.0.1)'
    )
    parser.add_argument(
        '--port', '-p',
        type=int,
        default=5000,
        help='Port to listen on (default: 5000)'
    )
    parser.add_argument(
        '--output', '-o',
        default='.',
        help='Directory archives are saved to (default: current directory)'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug mode'
    )

    args = parser.parse_args()

    print(f"Starting Docs MD Crawler API at http://{args.host}:{args.port}")
    run_app(host=args.host, port=args.port, debug=args.debug, output_dir=args.output)


if __name__ == '__main__':
    main()

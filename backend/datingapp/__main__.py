"""Serve the API with uvicorn.

Usage: python -m datingapp [--host HOST] [--port PORT] [--reload]
"""
import argparse

import uvicorn


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="datingapp", description="Run the dating app API")
    parser.add_argument('--host', default='127.0.0.1', help='Interface to bind')
    parser.add_argument('--port', type=int, default=5000, help='Port to listen on')
    parser.add_argument('--reload', action='store_true', help='Restart on code changes (development)')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    uvicorn.run("datingapp.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == '__main__':
    main()

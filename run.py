"""Exporter server entry point."""

from jikji.cli import serve


def main() -> None:
    serve()


if __name__ == "__main__":
    main()

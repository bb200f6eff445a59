"""Allow ``python -m logstack_exporter``."""

from logstack_exporter.cli import main

if __name__ == "__main__":  # pragma: no cover - manual execution entrypoint
    main()

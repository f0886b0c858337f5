"""Entry point for ``python -m notification_dispatch``."""

from notification_dispatch.app.cli import main

if __name__ == "__main__":
    main()

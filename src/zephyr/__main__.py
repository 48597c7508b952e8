"""Allow ``python -m zephyr``."""

from .cli import app_main

if __name__ == "__main__":  # pragma: no cover
    app_main()

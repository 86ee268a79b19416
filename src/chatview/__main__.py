"""Allow running chatview with ``python -m chatview``."""

from .cli.app import main

if __name__ == "__main__":
    main()

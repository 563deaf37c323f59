"""Allow running Ultima with ``python -m ultima``."""

from .main import main

if __name__ == "__main__":
    main()

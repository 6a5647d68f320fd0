"""Allow ``python -m azprovision``."""

from azprovision.cli import main

if __name__ == "__main__":
    main()

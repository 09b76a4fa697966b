"""Allow running the server as a module: python -m eventhub."""

from eventhub.runner import main

if __name__ == "__main__":
    main()

"""Run the Ralph CLI straight from a source checkout."""

from ralph.cli import app, main

__all__ = ["app", "main"]

if __name__ == "__main__":
    main()

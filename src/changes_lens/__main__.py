"""Allow ``python -m changes_lens``."""

from changes_lens.cli import app

if __name__ == "__main__":
    app()

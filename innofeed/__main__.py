"""Allow ``python -m innofeed``."""
from innofeed.main import cli

if __name__ == "__main__":
    cli()

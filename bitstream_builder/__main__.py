"""Allow ``python -m bitstream_builder``."""

from bitstream_builder.cli import app

if __name__ == "__main__":
    app()

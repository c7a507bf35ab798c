"""Allow running the CLI with ``python -m snappy_cloud_image``."""

from snappy_cloud_image.cli import app

app(prog_name="snappy-cloud-image")

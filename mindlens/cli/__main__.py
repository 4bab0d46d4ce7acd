"""Allow ``python -m mindlens.cli`` execution."""

from mindlens.cli.ingest import main

main()

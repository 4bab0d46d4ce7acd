"""Command-line tools for MindLens.

- ``python -m mindlens.cli ingest``: add a URL or file to a book and index it
- ``python -m mindlens.cli ask``: stream an answer over one book or all books
- ``python -m mindlens.cli books``: list books and attachment status
"""

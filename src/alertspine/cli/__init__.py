"""Command-line interface (``alertspine``)."""

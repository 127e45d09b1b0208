"""Command line interface (``jobspine``)."""

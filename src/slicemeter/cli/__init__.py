"""Command-line interface for slicemeter."""

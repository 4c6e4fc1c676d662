"""Command-line front end for the injection engine."""

"""Command line interface for Visual CI/CD."""

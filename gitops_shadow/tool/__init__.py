"""Command line tool for gitops-shadow."""

"""Packaged translation catalogues."""

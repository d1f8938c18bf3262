"""Bundled data files for ejectctl."""

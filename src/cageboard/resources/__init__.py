"""Packaged resources for cage-board."""

from cageboard.resources.paths import codebooks_root, data_root, samples_root, set_data_root_override

__all__ = ["codebooks_root", "data_root", "samples_root", "set_data_root_override"]

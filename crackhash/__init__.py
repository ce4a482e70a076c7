"""Distributed MD5 brute-force cracking: a manager library that splits work and a worker service that searches."""

__version__ = "0.1.0"
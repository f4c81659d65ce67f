"""Numerical support routines and per-pixel analysis of image stacks."""

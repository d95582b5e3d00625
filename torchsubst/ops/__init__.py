"""Tensor operations on discrete probability distributions."""

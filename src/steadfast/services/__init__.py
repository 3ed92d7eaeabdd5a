"""Example services built on Steadfast."""

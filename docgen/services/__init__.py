"""Application services layer.

Services coordinate entity stores, optimistic mutations and the derived
notification and search views. They should avoid UI concerns.
"""

"""Observation writing pipeline for dnsprices.

Change detection against the stored history: an observation is appended only
when a product's price or bonus differs from the last one recorded.
"""

# link_scout/crawler/__init__.py
"""Crawler core: fetch strategies, robots policy, pacing and the BFS session."""

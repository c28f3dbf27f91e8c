"""
Command groups of the replaycache CLI.
"""

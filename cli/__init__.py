"""
replaycache CLI - Partition replay cache tooling

Commands:
- replaycache log list/tail - Inspect cached partition logs
- replaycache sweep - Purge tombstoned partitions and expired chunk memos
- replaycache run - Split, generate and replay with user-supplied collaborators
- replaycache version - Show version information
"""

__version__ = "0.1.0"

"""SLA console cache consistency engine.

Keeps an admin console's cached views consistent with the server across
optimistic local writes, their confirmation or failure, and change
broadcasts from other sessions.
"""

__version__ = "1.0.0"

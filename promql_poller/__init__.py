"""
PromQL poller: periodically executes named PromQL queries and logs the results.
"""

__version__ = "0.1.0"

"""
fundrouter: channel matching, failover and evidence upload for funding requests.
"""

__version__ = "0.4.0"

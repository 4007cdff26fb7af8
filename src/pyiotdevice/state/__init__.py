"""Connection state layer.

This package owns the connection session state and is the only place where
broker status updates turn into state-changed notifications.
"""

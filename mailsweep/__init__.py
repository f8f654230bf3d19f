"""
Mailsweep - mailbox sync, AI triage and automated unsubscribe.
"""

__version__ = '0.1.0'

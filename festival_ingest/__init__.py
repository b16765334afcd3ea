"""
Festival Ingest: crawl festival websites, extract structured event data
with a language model, validate it and persist it atomically.
"""

__version__ = "0.1.0"

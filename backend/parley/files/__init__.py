"""File attachments: blob storage on disk plus metadata in the chat store.

Uploads are posted to a room as a ``File: <name>`` message carrying the
file id, so they flow through the same fan-out as any other message.
"""

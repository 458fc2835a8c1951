"""Attachment lifecycle services for the service desk edit forms."""

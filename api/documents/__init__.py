"""
Documents module - records with mounted file attachments.

A document carries a list of attachments and an optional cover image,
both managed by mounted uploaders (see the mount module). Files are cached
when a request assigns them, stored when the session flushes and cleaned
up when the change is committed.
"""

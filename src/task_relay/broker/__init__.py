"""Task staging broker: codec, registry, collection, and routing.

Tasks travel between repositories as plain files.  Every hop is a single
``rename`` inside one filesystem, so a task is always in exactly one staging
directory: the source outbox, the central outbox, or a destination inbox.
Nothing is buffered in memory between hops, and nothing is copied and then
deleted.  A failed item stays where it is and is retried on the next run.
"""
